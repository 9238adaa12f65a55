"""Outbound intents: chat messages, heartbeat pings and disconnects."""

from __future__ import annotations

import logging

from kubera_chat.protocol import build_chat_message, build_ping, encode_frame

from .connection import ConnectionManager

logger = logging.getLogger(__name__)


class OutboundDispatcher:
    """Encode caller intents and hand them to the connection manager.

    Constructing a dispatcher also makes it the source of the connection's
    heartbeat pings.

    Precondition failures return False and leave everything untouched; the
    caller decides whether to surface a notice or trigger a reconnect.
    """

    def __init__(self, connection: ConnectionManager) -> None:
        self._connection = connection
        connection.heartbeat = self.send_ping

    def send_message(self, chat_id: str | None, text: str) -> bool:
        if not self._connection.is_open:
            logger.error("Cannot send: not connected")
            return False
        if not chat_id:
            logger.error("Cannot send: no chat id")
            return False
        frame = build_chat_message(chat_id, text)
        logger.debug("Sending message to chat %s (%d chars)", chat_id, len(text))
        return self._connection.send(encode_frame(frame))

    def send_ping(self) -> bool:
        if not self._connection.is_open:
            return False
        return self._connection.send(encode_frame(build_ping()))

    def disconnect(self, reason: str = "User disconnect") -> None:
        self._connection.disconnect(reason)


__all__ = ["OutboundDispatcher"]
