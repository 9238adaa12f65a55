"""Total decoder for inbound chat socket payloads."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Union

from .frames import FRAME_TYPES, Frame, FrameDecodeError, UnknownFrame

logger = logging.getLogger(__name__)

RawPayload = Union[str, bytes, bytearray, Mapping[str, Any]]


class FrameDecoder:
    """Map raw socket payloads onto typed frames.

    ``decode`` never raises: malformed or too deeply nested JSON, non-object
    payloads, missing or unrecognised ``type`` values and field errors all come
    back as an :class:`UnknownFrame` carrying the reason, after a DEBUG
    diagnostic. Type tags are matched exactly, case included.
    """

    def decode(self, raw: RawPayload) -> Union[Frame, UnknownFrame]:
        try:
            data = self._load(raw)
        except (UnicodeDecodeError, TypeError, ValueError, RecursionError) as exc:
            return self._unknown(f"malformed payload: {exc}", raw)

        frame_type = data.get("type")
        if not isinstance(frame_type, str) or not frame_type:
            return self._unknown("payload missing 'type'", raw)

        loader = FRAME_TYPES.get(frame_type)
        if loader is None:
            return self._unknown(f"unrecognised frame type '{frame_type}'", raw, frame_type)

        try:
            return loader.from_dict(data)
        except FrameDecodeError as exc:
            return self._unknown(str(exc), raw, frame_type)
        except Exception as exc:
            logger.debug("frame loader for %s failed", frame_type, exc_info=True)
            return self._unknown(f"{frame_type} loader failed: {exc}", raw, frame_type)

    def _load(self, raw: RawPayload) -> Mapping[str, Any]:
        if isinstance(raw, Mapping):
            return raw
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        mapping = json.loads(raw)
        if not isinstance(mapping, Mapping):
            raise ValueError("decoded payload must be a JSON object")
        return mapping

    def _unknown(self, reason: str, raw: Any, frame_type: str | None = None) -> UnknownFrame:
        logger.debug("dropping frame: %s", reason)
        return UnknownFrame(reason=reason, raw=raw, frame_type=frame_type)


__all__ = ["FrameDecoder", "RawPayload"]
