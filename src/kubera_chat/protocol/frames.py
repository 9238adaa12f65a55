"""Chat socket frame shapes.

Every frame on the chat socket is a JSON object carrying a ``type``
discriminator. Inbound frames are modelled as one frozen dataclass per type;
:data:`FRAME_TYPES` maps the discriminator to its loader so the decoder can
dispatch over a closed set. Anything outside that set becomes an
:class:`UnknownFrame`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Type, Union

CONNECTION_TYPE = "connection"
RATE_LIMIT_INFO_TYPE = "rate_limit_info"
MESSAGE_RECEIVED_TYPE = "message_received"
TOOL_EXECUTING_TYPE = "tool_executing"
TOOL_COMPLETE_TYPE = "tool_complete"
TOOL_ERROR_TYPE = "tool_error"
TEXT_CHUNK_TYPE = "text_chunk"
CHART_GENERATED_TYPE = "chart_generated"
MESSAGE_COMPLETE_TYPE = "message_complete"
RATE_LIMIT_EXCEEDED_TYPE = "rate_limit_exceeded"
ERROR_TYPE = "error"
PING_TYPE = "ping"
PONG_TYPE = "pong"

# Outbound only.
MESSAGE_TYPE = "message"

RATE_LIMIT_SCOPES = ("burst", "per_chat", "hourly", "daily")


class FrameDecodeError(ValueError):
    """Raised when a frame payload is missing or mistypes a required field."""


def _require_str(data: Mapping[str, Any], key: str, frame_type: str) -> str:
    value = data.get(key)
    if value is None:
        raise FrameDecodeError(f"{frame_type} frame missing '{key}'")
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise FrameDecodeError(f"{frame_type} frame field '{key}' must be a string")
    return str(value)


def _optional_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def _coerce_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _coerce_names(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value if item is not None)
    return ()


@dataclass(frozen=True, slots=True)
class ConnectionFrame:
    user_id: Optional[str] = None

    TYPE = CONNECTION_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConnectionFrame":
        return cls(user_id=_optional_str(data, "user_id"))


@dataclass(frozen=True, slots=True)
class RateLimitCounter:
    current: int = 0
    limit: int = 0


@dataclass(frozen=True, slots=True)
class RateLimitSnapshot:
    """Usage against the four independent backend quotas."""

    burst: RateLimitCounter = field(default_factory=RateLimitCounter)
    per_chat: RateLimitCounter = field(default_factory=RateLimitCounter)
    hourly: RateLimitCounter = field(default_factory=RateLimitCounter)
    daily: RateLimitCounter = field(default_factory=RateLimitCounter)

    @classmethod
    def from_usage(
        cls,
        current: Mapping[str, Any],
        limits: Mapping[str, Any],
    ) -> "RateLimitSnapshot":
        counters = {
            scope: RateLimitCounter(
                current=_coerce_int(current.get(scope)),
                limit=_coerce_int(limits.get(scope)),
            )
            for scope in RATE_LIMIT_SCOPES
        }
        return cls(**counters)

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {
            scope: {"current": counter.current, "limit": counter.limit}
            for scope, counter in (
                ("burst", self.burst),
                ("per_chat", self.per_chat),
                ("hourly", self.hourly),
                ("daily", self.daily),
            )
        }


@dataclass(frozen=True, slots=True)
class RateLimitInfoFrame:
    limits: RateLimitSnapshot

    TYPE = RATE_LIMIT_INFO_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RateLimitInfoFrame":
        current = data.get("current_usage")
        limits = data.get("limits")
        if not isinstance(current, Mapping) or not isinstance(limits, Mapping):
            raise FrameDecodeError("rate_limit_info requires 'current_usage' and 'limits' mappings")
        return cls(limits=RateLimitSnapshot.from_usage(current, limits))


@dataclass(frozen=True, slots=True)
class MessageReceivedFrame:
    message_id: Optional[str] = None

    TYPE = MESSAGE_RECEIVED_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MessageReceivedFrame":
        return cls(message_id=_optional_str(data, "message_id"))


@dataclass(frozen=True, slots=True)
class ToolExecutingFrame:
    tool_name: str
    tool_id: Optional[str] = None
    timestamp: Optional[str] = None

    TYPE = TOOL_EXECUTING_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ToolExecutingFrame":
        return cls(
            tool_name=_require_str(data, "tool_name", TOOL_EXECUTING_TYPE),
            tool_id=_optional_str(data, "tool_id"),
            timestamp=_optional_str(data, "timestamp"),
        )


@dataclass(frozen=True, slots=True)
class ToolCompleteFrame:
    tool_name: str

    TYPE = TOOL_COMPLETE_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ToolCompleteFrame":
        return cls(tool_name=_require_str(data, "tool_name", TOOL_COMPLETE_TYPE))


@dataclass(frozen=True, slots=True)
class ToolErrorFrame:
    tool_name: str
    error: Optional[str] = None

    TYPE = TOOL_ERROR_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ToolErrorFrame":
        return cls(
            tool_name=_require_str(data, "tool_name", TOOL_ERROR_TYPE),
            error=_optional_str(data, "error"),
        )


@dataclass(frozen=True, slots=True)
class TextChunkFrame:
    content: str

    TYPE = TEXT_CHUNK_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TextChunkFrame":
        content = data.get("content")
        if not isinstance(content, str):
            raise FrameDecodeError("text_chunk frame requires string 'content'")
        return cls(content=content)


@dataclass(frozen=True, slots=True)
class ChartGeneratedFrame:
    available: bool
    url: Optional[str] = None
    symbol: Optional[str] = None

    TYPE = CHART_GENERATED_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChartGeneratedFrame":
        url = _optional_str(data, "chart_url")
        available = data.get("chart_available")
        return cls(
            available=bool(available) and bool(url),
            url=url,
            symbol=_optional_str(data, "stock_symbol"),
        )


@dataclass(frozen=True, slots=True)
class MessageCompleteFrame:
    tokens_used: Optional[int] = None
    tools_used: Tuple[str, ...] = ()

    TYPE = MESSAGE_COMPLETE_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MessageCompleteFrame":
        tokens = data.get("tokens_used")
        return cls(
            tokens_used=_coerce_int(tokens) if tokens is not None else None,
            tools_used=_coerce_names(data.get("tools_used")),
        )


@dataclass(frozen=True, slots=True)
class RateLimitExceededFrame:
    message: Optional[str] = None

    TYPE = RATE_LIMIT_EXCEEDED_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RateLimitExceededFrame":
        return cls(message=_optional_str(data, "message") or None)


@dataclass(frozen=True, slots=True)
class ErrorFrame:
    message: Optional[str] = None

    TYPE = ERROR_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ErrorFrame":
        return cls(message=_optional_str(data, "message") or None)


@dataclass(frozen=True, slots=True)
class PingFrame:
    TYPE = PING_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PingFrame":
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {"type": PING_TYPE}


@dataclass(frozen=True, slots=True)
class PongFrame:
    TYPE = PONG_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PongFrame":
        return cls()


@dataclass(frozen=True, slots=True)
class UnknownFrame:
    """Anything the decoder could not map onto a known frame."""

    reason: str
    raw: Any = None
    frame_type: Optional[str] = None


Frame = Union[
    ConnectionFrame,
    RateLimitInfoFrame,
    MessageReceivedFrame,
    ToolExecutingFrame,
    ToolCompleteFrame,
    ToolErrorFrame,
    TextChunkFrame,
    ChartGeneratedFrame,
    MessageCompleteFrame,
    RateLimitExceededFrame,
    ErrorFrame,
    PingFrame,
    PongFrame,
]


FRAME_TYPES: Dict[str, Type[Any]] = {
    cls.TYPE: cls
    for cls in (
        ConnectionFrame,
        RateLimitInfoFrame,
        MessageReceivedFrame,
        ToolExecutingFrame,
        ToolCompleteFrame,
        ToolErrorFrame,
        TextChunkFrame,
        ChartGeneratedFrame,
        MessageCompleteFrame,
        RateLimitExceededFrame,
        ErrorFrame,
        PingFrame,
        PongFrame,
    )
}


__all__ = [
    "CHART_GENERATED_TYPE",
    "CONNECTION_TYPE",
    "ERROR_TYPE",
    "FRAME_TYPES",
    "MESSAGE_COMPLETE_TYPE",
    "MESSAGE_RECEIVED_TYPE",
    "MESSAGE_TYPE",
    "PING_TYPE",
    "PONG_TYPE",
    "RATE_LIMIT_EXCEEDED_TYPE",
    "RATE_LIMIT_INFO_TYPE",
    "RATE_LIMIT_SCOPES",
    "TEXT_CHUNK_TYPE",
    "TOOL_COMPLETE_TYPE",
    "TOOL_ERROR_TYPE",
    "TOOL_EXECUTING_TYPE",
    "ChartGeneratedFrame",
    "ConnectionFrame",
    "ErrorFrame",
    "Frame",
    "FrameDecodeError",
    "MessageCompleteFrame",
    "MessageReceivedFrame",
    "PingFrame",
    "PongFrame",
    "RateLimitCounter",
    "RateLimitExceededFrame",
    "RateLimitInfoFrame",
    "RateLimitSnapshot",
    "TextChunkFrame",
    "ToolCompleteFrame",
    "ToolErrorFrame",
    "ToolExecutingFrame",
    "UnknownFrame",
]
