"""Assembly of the single in-flight assistant reply.

The assembler is a two-state machine (``IDLE`` / ``STREAMING``) driven by
:meth:`StreamAssembler.apply`. Text chunks are concatenated in arrival order,
tool and chart events are collected on the side, and ``message_complete``
packages everything into a :class:`CompletedMessage` and clears all transient
state so nothing leaks into the next turn.
"""

from __future__ import annotations

import enum
import itertools
import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple, Union

from kubera_chat.protocol import (
    ChartGeneratedFrame,
    MessageCompleteFrame,
    TextChunkFrame,
    ToolCompleteFrame,
    ToolErrorFrame,
    ToolExecutingFrame,
)

logger = logging.getLogger(__name__)

TurnFrame = Union[
    TextChunkFrame,
    ToolExecutingFrame,
    ToolCompleteFrame,
    ToolErrorFrame,
    ChartGeneratedFrame,
    MessageCompleteFrame,
]


class AssemblerPhase(str, enum.Enum):
    IDLE = "idle"
    STREAMING = "streaming"


class ToolStatus(str, enum.Enum):
    EXECUTING = "executing"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class ToolExecution:
    id: str
    name: str
    status: ToolStatus = ToolStatus.EXECUTING
    error: Optional[str] = None
    started_at: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.status is not ToolStatus.EXECUTING


@dataclass(frozen=True)
class ChartInfo:
    url: str
    symbol: Optional[str] = None


@dataclass(frozen=True)
class CompletedMessage:
    content: str
    tool_names: Tuple[str, ...] = ()
    chart_url: Optional[str] = None
    chart_symbol: Optional[str] = None
    tokens_used: Optional[int] = None
    tools_used: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AssemblerUpdate:
    """Outcome of one :meth:`StreamAssembler.apply` call."""

    changed: bool = False
    finished_tool: Optional[ToolExecution] = None
    completed: Optional[CompletedMessage] = None


_NO_CHANGE = AssemblerUpdate()


class StreamAssembler:
    def __init__(self) -> None:
        self._phase = AssemblerPhase.IDLE
        self._chunks: List[str] = []
        self._tools: List[ToolExecution] = []
        self._tool_names: List[str] = []
        self._chart: Optional[ChartInfo] = None
        self._tool_seq = itertools.count(1)

    # ------------------------------------------------------------------
    @property
    def phase(self) -> AssemblerPhase:
        return self._phase

    @property
    def is_streaming(self) -> bool:
        return self._phase is AssemblerPhase.STREAMING

    @property
    def content(self) -> str:
        return "".join(self._chunks)

    @property
    def tools(self) -> Tuple[ToolExecution, ...]:
        return tuple(self._tools)

    @property
    def chart(self) -> Optional[ChartInfo]:
        return self._chart

    # ------------------------------------------------------------------
    def begin_turn(self) -> None:
        """Prepare for a reply to a message that was just sent."""

        if self._has_partial():
            logger.warning(
                "Discarding unfinished reply (%d chars, %d tools) for new turn",
                len(self.content),
                len(self._tools),
            )
        self._clear()
        self._phase = AssemblerPhase.STREAMING

    def abort(self) -> str:
        """Drop the in-flight turn and return whatever text had arrived."""

        partial = self.content
        if self._has_partial():
            logger.info("Aborting reply with %d buffered chars", len(partial))
        self._clear()
        self._phase = AssemblerPhase.IDLE
        return partial

    def expire_tool(self, tool_id: str) -> bool:
        """Hide a finished tool from the visible list."""

        for idx, tool in enumerate(self._tools):
            if tool.id == tool_id and tool.finished:
                del self._tools[idx]
                return True
        return False

    # ------------------------------------------------------------------
    def apply(self, frame: TurnFrame) -> AssemblerUpdate:
        if isinstance(frame, TextChunkFrame):
            self._open_turn()
            self._chunks.append(frame.content)
            return AssemblerUpdate(changed=True)

        if isinstance(frame, ToolExecutingFrame):
            self._open_turn()
            tool_id = frame.tool_id or f"{frame.tool_name}-{next(self._tool_seq)}"
            self._tools.append(
                ToolExecution(id=tool_id, name=frame.tool_name, started_at=frame.timestamp)
            )
            self._tool_names.append(frame.tool_name)
            logger.info("Tool executing: %s", frame.tool_name)
            return AssemblerUpdate(changed=True)

        if isinstance(frame, ToolCompleteFrame):
            return self._finish_tool(frame.tool_name, ToolStatus.COMPLETE, None)

        if isinstance(frame, ToolErrorFrame):
            logger.warning("Tool error: %s (%s)", frame.tool_name, frame.error or "no detail")
            return self._finish_tool(frame.tool_name, ToolStatus.ERROR, frame.error)

        if isinstance(frame, ChartGeneratedFrame):
            if not frame.available or not frame.url:
                logger.debug("Chart not available; ignoring chart_generated")
                return _NO_CHANGE
            self._open_turn()
            self._chart = ChartInfo(url=frame.url, symbol=frame.symbol)
            return AssemblerUpdate(changed=True)

        if isinstance(frame, MessageCompleteFrame):
            return self._complete(frame)

        raise TypeError(f"StreamAssembler cannot apply {type(frame).__name__}")

    # ------------------------------------------------------------------
    def _open_turn(self) -> None:
        if self._phase is AssemblerPhase.IDLE:
            self._clear()
            self._phase = AssemblerPhase.STREAMING

    def _finish_tool(self, name: str, status: ToolStatus, error: Optional[str]) -> AssemblerUpdate:
        # Oldest running tool with that name wins; late events for a tool
        # that was already expired or never announced are ignored.
        for idx, tool in enumerate(self._tools):
            if tool.name == name and tool.status is ToolStatus.EXECUTING:
                updated = replace(tool, status=status, error=error)
                self._tools[idx] = updated
                if status is ToolStatus.COMPLETE:
                    logger.info("Tool complete: %s", name)
                return AssemblerUpdate(changed=True, finished_tool=updated)
        logger.debug("No running tool named %s; ignoring %s", name, status.value)
        return _NO_CHANGE

    def _complete(self, frame: MessageCompleteFrame) -> AssemblerUpdate:
        if self._phase is AssemblerPhase.IDLE and not self._has_partial():
            logger.debug("message_complete with no reply in flight; ignoring")
            return _NO_CHANGE
        chart = self._chart
        completed = CompletedMessage(
            content=self.content,
            tool_names=tuple(self._tool_names),
            chart_url=chart.url if chart else None,
            chart_symbol=chart.symbol if chart else None,
            tokens_used=frame.tokens_used,
            tools_used=frame.tools_used,
        )
        self._clear()
        self._phase = AssemblerPhase.IDLE
        return AssemblerUpdate(changed=True, completed=completed)

    def _has_partial(self) -> bool:
        return bool(self._chunks or self._tools or self._chart is not None)

    def _clear(self) -> None:
        self._chunks = []
        self._tools = []
        self._tool_names = []
        self._chart = None


__all__ = [
    "AssemblerPhase",
    "AssemblerUpdate",
    "ChartInfo",
    "CompletedMessage",
    "StreamAssembler",
    "ToolExecution",
    "ToolStatus",
    "TurnFrame",
]
