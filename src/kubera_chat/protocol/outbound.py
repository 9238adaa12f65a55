"""Builders for frames the client sends to the chat backend."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Union

from .frames import MESSAGE_TYPE, PingFrame


@dataclass(frozen=True, slots=True)
class ChatMessageFrame:
    chat_id: str
    message: str

    TYPE = MESSAGE_TYPE

    def to_dict(self) -> Dict[str, Any]:
        return {"type": MESSAGE_TYPE, "chat_id": self.chat_id, "message": self.message}


OutboundFrame = Union[ChatMessageFrame, PingFrame]


def build_chat_message(chat_id: str, message: str) -> ChatMessageFrame:
    if not chat_id:
        raise ValueError("chat message requires a chat_id")
    return ChatMessageFrame(chat_id=str(chat_id), message=str(message))


def build_ping() -> PingFrame:
    return PingFrame()


def encode_frame(frame: OutboundFrame) -> str:
    """Serialise *frame* to the compact JSON text sent on the socket."""

    return json.dumps(frame.to_dict(), separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "ChatMessageFrame",
    "OutboundFrame",
    "build_chat_message",
    "build_ping",
    "encode_frame",
]
