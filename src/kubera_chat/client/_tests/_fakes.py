"""In-memory stand-ins for the socket, the timer scheduler and the clock."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, List, Optional

_EOF = object()


class FakeWebSocket:
    """Minimal websocket surface used by ConnectionManager."""

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.closed = False
        self.send_error: Optional[BaseException] = None
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()

    def feed(self, payload: Any) -> None:
        if not isinstance(payload, (str, bytes)):
            payload = json.dumps(payload)
        self._incoming.put_nowait(payload)

    def drop(self, code: int = 1006, reason: str = "") -> None:
        """Simulate the remote end closing the socket."""

        self.close_code = code
        self.close_reason = reason
        self.closed = True
        self._incoming.put_nowait(_EOF)

    async def send(self, message: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        if self.closed:
            raise ConnectionError("socket closed")
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.drop(code, reason)

    def sent_frames(self) -> List[dict]:
        return [json.loads(m) for m in self.sent]

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> Any:
        item = await self._incoming.get()
        if item is _EOF:
            raise StopAsyncIteration
        return item


class FakeConnector:
    def __init__(self) -> None:
        self.urls: List[str] = []
        self.sockets: List[FakeWebSocket] = []
        self._failures: List[BaseException] = []

    def fail_next(self, exc: BaseException, times: int = 1) -> None:
        self._failures.extend([exc] * times)

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self._failures:
            raise self._failures.pop(0)
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def latest(self) -> FakeWebSocket:
        return self.sockets[-1]


class ManualHandle:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def live(self) -> bool:
        return not (self.cancelled or self.fired)


class ManualScheduler:
    """Records armed timers; tests fire them explicitly."""

    def __init__(self) -> None:
        self.handles: List[ManualHandle] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(delay, callback)
        self.handles.append(handle)
        return handle

    def live(self) -> List[ManualHandle]:
        return [h for h in self.handles if h.live]

    def live_delays(self) -> List[float]:
        return [h.delay for h in self.live()]

    def fire(self, handle: ManualHandle) -> None:
        assert handle.live, "timer already cancelled or fired"
        handle.fired = True
        handle.callback()

    def fire_delay(self, delay: float) -> None:
        matches = [h for h in self.live() if h.delay == delay]
        assert matches, f"no live timer with delay {delay}; live={self.live_delays()}"
        self.fire(matches[0])


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def drain(rounds: int = 5) -> None:
    """Let pending tasks (reader, sender, close) run."""

    for _ in range(rounds):
        await asyncio.sleep(0)
