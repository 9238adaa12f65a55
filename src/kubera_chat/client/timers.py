"""Cancelable timer handles owned by the connection manager."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def loop_scheduler(delay_s: float, callback: Callable[[], None]) -> TimerHandle:
    """Schedule on the running asyncio loop."""

    return asyncio.get_running_loop().call_later(max(0.0, float(delay_s)), callback)


class TimerSet:
    """Track every armed timer so a teardown can cancel all of them at once.

    Named timers are singletons: arming ``reconnect`` while a previous
    ``reconnect`` is pending cancels the older one first.
    """

    def __init__(self, scheduler: Optional[Scheduler] = None) -> None:
        self._scheduler: Scheduler = scheduler or loop_scheduler
        self._handles: Dict[str, TimerHandle] = {}
        self._anon = itertools.count()

    def call_later(self, delay_s: float, callback: Callable[[], Any], name: Optional[str] = None) -> str:
        key = name if name is not None else f"anon-{next(self._anon)}"
        self.cancel(key)

        def _fire() -> None:
            if self._handles.get(key) is handle_ref[0]:
                self._handles.pop(key, None)
            try:
                callback()
            except Exception:
                logger.debug("timer %s callback failed", key, exc_info=True)

        handle_ref: list[TimerHandle] = []
        handle = self._scheduler(delay_s, _fire)
        handle_ref.append(handle)
        self._handles[key] = handle
        return key

    def cancel(self, name: str) -> bool:
        handle = self._handles.pop(name, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> int:
        handles = list(self._handles.items())
        self._handles.clear()
        for _, handle in handles:
            handle.cancel()
        return len(handles)

    def is_pending(self, name: str) -> bool:
        return name in self._handles

    def pending(self) -> Tuple[str, ...]:
        return tuple(self._handles)


__all__ = ["Scheduler", "TimerHandle", "TimerSet", "loop_scheduler"]
