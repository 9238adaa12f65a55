"""Chat streaming session: the socket, the reply assembler and the snapshot.

:class:`ChatSession` is what a UI layer talks to. It owns one
:class:`ConnectionManager`, routes decoded frames either to the
:class:`StreamAssembler` (turn content) or straight into the
:class:`SessionStore` (connection, rate-limit, error and pong frames), and
publishes a fresh :class:`SessionState` after every change.

All methods must be called from the event loop that runs the socket.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from kubera_chat.protocol import (
    ChartGeneratedFrame,
    ConnectionFrame,
    ErrorFrame,
    FrameDecoder,
    MessageCompleteFrame,
    MessageReceivedFrame,
    PingFrame,
    PongFrame,
    RateLimitExceededFrame,
    RateLimitInfoFrame,
    TextChunkFrame,
    ToolCompleteFrame,
    ToolErrorFrame,
    ToolExecutingFrame,
    UnknownFrame,
)
from kubera_chat.utils.debug import maybe_enable_debug_logger

from .assembler import CompletedMessage, StreamAssembler, ToolExecution
from .config import ClientConfig
from .connection import ConnectionManager, ConnectionState, ConnectionStatus, Connector
from .credentials import TokenProvider, build_socket_url
from .dispatcher import OutboundDispatcher
from .session_state import SessionState, SessionStore, Subscriber
from .timers import Scheduler

logger = logging.getLogger(__name__)

_SESSION_DEBUG = maybe_enable_debug_logger(logger)

RATE_LIMITED_MESSAGE = "Rate limit exceeded. Please wait."
GENERIC_ERROR_MESSAGE = "An error occurred"
CONNECTION_ERROR_MESSAGE = "Connection error"

_TURN_FRAMES = (
    TextChunkFrame,
    ToolExecutingFrame,
    ToolCompleteFrame,
    ToolErrorFrame,
    ChartGeneratedFrame,
    MessageCompleteFrame,
)


class ChatSession:
    def __init__(
        self,
        token_provider: TokenProvider,
        chat_id: Optional[str] = None,
        config: Optional[ClientConfig] = None,
        *,
        on_message_complete: Optional[Callable[[CompletedMessage], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        connector: Optional[Connector] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or ClientConfig.from_env()
        self.on_message_complete = on_message_complete
        self.on_error = on_error
        self._token_provider = token_provider
        self._chat_id = chat_id or None
        self._clock = clock
        self.store = SessionStore()
        self.decoder = FrameDecoder()
        self.assembler = StreamAssembler()
        self.connection = ConnectionManager(
            self._socket_url,
            self.config,
            connector=connector,
            scheduler=scheduler,
            handle_state=self._on_connection_state,
            handle_message=self._on_raw_message,
            handle_transport_error=self._on_transport_error,
            handle_reconnect_scheduled=self._on_reconnect_scheduled,
            handle_terminal=self._on_terminal,
            handle_stopped=self._on_stopped,
        )
        self.dispatcher = OutboundDispatcher(self.connection)
        self._stopped: Optional[asyncio.Event] = None

    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self.store.state

    @property
    def chat_id(self) -> Optional[str]:
        return self._chat_id

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.store.subscribe(callback)

    # ------------------------------------------------------------------
    def connect(self) -> bool:
        return self.connection.connect()

    def disconnect(self, reason: str = "User disconnect") -> None:
        """Close intentionally, cancel all timers and clear transient state."""

        self.dispatcher.disconnect(reason)
        self.assembler.abort()
        self.store.reset(SessionState(connection=self.connection.state))
        self._signal_stopped()

    def reconnect(self) -> bool:
        """Manual retry: starts the attempt count over before connecting."""

        self.connection.reset_attempts()
        self.store.update(
            connection_failed=False,
            reconnecting=False,
            reconnect_attempt=0,
            error=None,
        )
        return self.connect()

    def set_chat(self, chat_id: Optional[str]) -> bool:
        """Switch chat context; the old socket is torn down before the new one opens."""

        chat_id = chat_id or None
        if chat_id == self._chat_id and self.connection.state.status is not ConnectionStatus.IDLE:
            return self.connection.state.is_open
        if self.connection.state.status is not ConnectionStatus.IDLE:
            self.disconnect("Chat changed")
        self._chat_id = chat_id
        if chat_id is None:
            return False
        return self.connect()

    def send_message(self, text: str) -> bool:
        """Send a user message; False when not connected or no chat is active."""

        if not self.dispatcher.send_message(self._chat_id, text):
            return False
        self.assembler.begin_turn()
        self.store.update(
            is_streaming=True,
            streaming_content="",
            tools=(),
            chart=None,
            error=None,
        )
        return True

    async def run_until_disconnected(self) -> SessionState:
        """Connect and wait until the socket is closed for good.

        That is a local disconnect, a normal close from the server or a terminal
        failure; reconnects with backoff happen transparently. Returns the
        final snapshot; returns immediately when there is nothing to connect to.
        """

        self._stopped = asyncio.Event()
        if not self.connect():
            return self.state
        await self._stopped.wait()
        return self.state

    # ------------------------------------------------------------------
    def handle_frame(self, frame: Any) -> None:
        """Apply one decoded frame to the session."""

        if isinstance(frame, UnknownFrame):
            return

        if isinstance(frame, _TURN_FRAMES):
            self._apply_turn_frame(frame)
            return

        if isinstance(frame, ConnectionFrame):
            logger.info("Chat connection confirmed for user %s", frame.user_id)
            self.store.update(user_id=frame.user_id)
            return

        if isinstance(frame, RateLimitInfoFrame):
            if _SESSION_DEBUG:
                logger.debug("Rate limits: %s", frame.limits.to_dict())
            self.store.update(rate_limits=frame.limits)
            return

        if isinstance(frame, MessageReceivedFrame):
            logger.debug("Message acknowledged: %s", frame.message_id)
            self.store.update(last_message_id=frame.message_id)
            return

        if isinstance(frame, RateLimitExceededFrame):
            self._application_error(frame.message or RATE_LIMITED_MESSAGE)
            return

        if isinstance(frame, ErrorFrame):
            self._application_error(frame.message or GENERIC_ERROR_MESSAGE)
            return

        if isinstance(frame, PongFrame):
            self.store.update(last_pong_at=self._clock())
            return

        if isinstance(frame, PingFrame):
            logger.debug("Ignoring server ping")
            return

        logger.debug("No handler for frame %r", frame)

    # ------------------------------------------------------------------
    def _socket_url(self) -> Optional[str]:
        chat_id = self._chat_id
        token = self._token_provider.get_token()
        if not chat_id or not token:
            return None
        return build_socket_url(self.config.ws_base, self.config.ws_path, token, chat_id)

    def _on_raw_message(self, raw: Any) -> None:
        self.handle_frame(self.decoder.decode(raw))

    def _on_connection_state(self, state: ConnectionState) -> None:
        changes: dict[str, Any] = {"connection": state}
        if state.status is ConnectionStatus.OPEN:
            changes.update(
                reconnecting=False,
                reconnect_attempt=0,
                connection_failed=False,
                error=None,
            )
        elif state.status is ConnectionStatus.CLOSED and self.assembler.is_streaming:
            # The in-flight reply dies with its socket.
            self.assembler.abort()
            changes.update(is_streaming=False, streaming_content="", tools=(), chart=None)
        self.store.update(**changes)

    def _on_transport_error(self, exc: BaseException) -> None:
        logger.debug("Chat transport error: %s", exc)
        self.store.update(error=CONNECTION_ERROR_MESSAGE)

    def _on_reconnect_scheduled(self, attempt: int, delay_s: float) -> None:
        self.store.update(reconnecting=True, reconnect_attempt=attempt)

    def _on_stopped(self, code: int, reason: str) -> None:
        logger.info("Chat socket closed by server (%s); not reconnecting", reason or code)
        self._signal_stopped()

    def _on_terminal(self, code: int, message: str) -> None:
        self.store.update(reconnecting=False, connection_failed=True, error=message)
        self._notify_error(message)
        self._signal_stopped()

    def _apply_turn_frame(self, frame: Any) -> None:
        update = self.assembler.apply(frame)
        if update.finished_tool is not None:
            self._schedule_tool_expiry(update.finished_tool)
        completed = update.completed
        if completed is not None:
            self.store.update(
                is_streaming=False,
                streaming_content="",
                tools=(),
                chart=None,
                last_completed=completed,
            )
            if self.on_message_complete is not None:
                try:
                    self.on_message_complete(completed)
                except Exception:
                    logger.debug("on_message_complete callback failed", exc_info=True)
            return
        if update.changed:
            self._publish_turn()

    def _publish_turn(self) -> None:
        assembler = self.assembler
        self.store.update(
            is_streaming=assembler.is_streaming,
            streaming_content=assembler.content,
            tools=assembler.tools,
            chart=assembler.chart,
        )

    def _schedule_tool_expiry(self, tool: ToolExecution) -> None:
        tool_id = tool.id
        self.connection.call_later(self.config.tool_expiry_s, lambda: self._expire_tool(tool_id))

    def _expire_tool(self, tool_id: str) -> None:
        if self.assembler.expire_tool(tool_id):
            self.store.update(tools=self.assembler.tools)

    def _application_error(self, message: str) -> None:
        logger.warning("Chat backend error: %s", message)
        self.assembler.abort()
        self.store.update(
            error=message,
            is_streaming=False,
            streaming_content="",
            tools=(),
            chart=None,
        )
        self._notify_error(message)

    def _signal_stopped(self) -> None:
        if self._stopped is not None:
            self._stopped.set()

    def _notify_error(self, message: str) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(message)
        except Exception:
            logger.debug("on_error callback failed", exc_info=True)


__all__ = [
    "CONNECTION_ERROR_MESSAGE",
    "GENERIC_ERROR_MESSAGE",
    "RATE_LIMITED_MESSAGE",
    "ChatSession",
]
