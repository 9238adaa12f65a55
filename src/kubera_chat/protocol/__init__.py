"""Wire protocol for the KUBERA chat socket."""

from __future__ import annotations

from .frames import *  # noqa: F401,F403
from .outbound import (
    ChatMessageFrame,
    OutboundFrame,
    build_chat_message,
    build_ping,
    encode_frame,
)
from .parser import FrameDecoder

__all__ = [name for name in globals().keys() if not name.startswith("_")]
