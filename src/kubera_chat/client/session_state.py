"""Published snapshot of the chat session and its subscriber fan-out."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional, Tuple

from kubera_chat.protocol import RateLimitSnapshot

from .assembler import ChartInfo, CompletedMessage, ToolExecution
from .connection import ConnectionState, ConnectionStatus

logger = logging.getLogger(__name__)

Subscriber = Callable[["SessionState"], None]


@dataclass(frozen=True)
class SessionState:
    """Immutable view handed to the UI layer; every change is a new instance."""

    connection: ConnectionState = ConnectionState()
    is_streaming: bool = False
    streaming_content: str = ""
    tools: Tuple[ToolExecution, ...] = ()
    chart: Optional[ChartInfo] = None
    rate_limits: Optional[RateLimitSnapshot] = None
    error: Optional[str] = None
    reconnecting: bool = False
    reconnect_attempt: int = 0
    connection_failed: bool = False
    user_id: Optional[str] = None
    last_message_id: Optional[str] = None
    last_pong_at: Optional[float] = None
    last_completed: Optional[CompletedMessage] = None

    @property
    def is_connected(self) -> bool:
        return self.connection.status is ConnectionStatus.OPEN


class SessionStore:
    def __init__(self, initial: Optional[SessionState] = None) -> None:
        self._state = initial or SessionState()
        self._subscribers: List[Subscriber] = []

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, callback: Subscriber, *, replay: bool = True) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""

        self._subscribers.append(callback)
        if replay:
            self._deliver(callback, self._state)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    def update(self, **changes: Any) -> SessionState:
        """Apply *changes* and publish when anything actually differs."""

        new_state = replace(self._state, **changes)
        if new_state == self._state:
            return self._state
        self._state = new_state
        self._publish()
        return new_state

    def reset(self, state: Optional[SessionState] = None) -> SessionState:
        self._state = state or SessionState()
        self._publish()
        return self._state

    def _publish(self) -> None:
        state = self._state
        for callback in list(self._subscribers):
            self._deliver(callback, state)

    def _deliver(self, callback: Subscriber, state: SessionState) -> None:
        try:
            callback(state)
        except Exception:
            logger.debug("session subscriber %r failed", callback, exc_info=True)


__all__ = ["SessionState", "SessionStore", "Subscriber"]
