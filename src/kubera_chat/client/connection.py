"""Ownership of the chat socket: open, close, send, heartbeat and reconnect.

Only :class:`ConnectionManager` ever touches the websocket handle. Each socket
it opens is tagged with a generation number; lifecycle events coming from an
older generation are dropped, so a socket replaced by ``connect()`` or torn
down by ``disconnect()`` can never schedule a reconnect of its own.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from kubera_chat.utils.debug import maybe_enable_debug_logger

from .config import (
    CLOSE_ABNORMAL,
    CLOSE_FORBIDDEN,
    CLOSE_INTERNAL_ERROR,
    CLOSE_NORMAL,
    CLOSE_UNAUTHENTICATED,
    ClientConfig,
)
from .reconnect import ReconnectPolicy, ReconnectState
from .timers import Scheduler, TimerSet

logger = logging.getLogger(__name__)

_CONN_DEBUG = maybe_enable_debug_logger(logger)

HEARTBEAT_TIMER = "heartbeat"
RECONNECT_TIMER = "reconnect"

NON_RETRYABLE_CODES = {
    CLOSE_UNAUTHENTICATED: "Authentication failed. Please sign in again.",
    CLOSE_FORBIDDEN: "Access to this chat was denied.",
}
RECONNECT_FAILED_MESSAGE = "Failed to reconnect. Please refresh the page."

Connector = Callable[[str], Awaitable[Any]]


class ConnectionStatus(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(frozen=True)
class ConnectionState:
    status: ConnectionStatus = ConnectionStatus.IDLE
    close_code: Optional[int] = None
    close_reason: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status is ConnectionStatus.OPEN


def websockets_connector(open_timeout: Optional[float] = None) -> Connector:
    async def _connect(url: str) -> Any:
        return await websockets.connect(url, open_timeout=open_timeout)

    return _connect


class ConnectionManager:
    """Single owner of the socket handle and of every timer around it.

    The ``handle_*`` callbacks are invoked on the event loop and must not
    block; their exceptions are logged and swallowed so a faulty subscriber
    cannot kill the reader task.
    """

    def __init__(
        self,
        url_factory: Callable[[], Optional[str]],
        config: Optional[ClientConfig] = None,
        *,
        connector: Optional[Connector] = None,
        scheduler: Optional[Scheduler] = None,
        policy: Optional[ReconnectPolicy] = None,
        handle_state: Optional[Callable[[ConnectionState], None]] = None,
        handle_open: Optional[Callable[[], None]] = None,
        handle_message: Optional[Callable[[Any], None]] = None,
        handle_transport_error: Optional[Callable[[BaseException], None]] = None,
        handle_reconnect_scheduled: Optional[Callable[[int, float], None]] = None,
        handle_terminal: Optional[Callable[[int, str], None]] = None,
        handle_stopped: Optional[Callable[[int, str], None]] = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._url_factory = url_factory
        self._connector = connector or websockets_connector(self.config.open_timeout_s or None)
        self.policy = policy or ReconnectPolicy.from_config(self.config)
        self.timers = TimerSet(scheduler)
        self.handle_state = handle_state
        self.handle_open = handle_open
        self.handle_message = handle_message
        self.handle_transport_error = handle_transport_error
        self.handle_reconnect_scheduled = handle_reconnect_scheduled
        self.handle_terminal = handle_terminal
        self.handle_stopped = handle_stopped
        # Installed by OutboundDispatcher; without it the heartbeat only re-arms.
        self.heartbeat: Optional[Callable[[], Any]] = None

        self._reconnect = ReconnectState(self.policy)
        self._state = ConnectionState()
        self._generation = 0
        self._ws: Any = None
        self._outbox: asyncio.Queue[str] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._sender_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state.is_open and self._outbox is not None

    @property
    def attempt_count(self) -> int:
        return self._reconnect.attempt_count

    @property
    def generation(self) -> int:
        return self._generation

    # ------------------------------------------------------------------
    def connect(self) -> bool:
        """Open a fresh socket, replacing any existing one.

        Returns False without touching the current connection when there is
        no endpoint to connect to (missing credential or chat id).
        """

        url = self._url_factory()
        if not url:
            logger.info("Chat socket connect skipped: no credential or chat id")
            return False
        loop = asyncio.get_running_loop()
        self._teardown("Superseded by new connection")
        generation = self._generation
        self._set_state(ConnectionState(ConnectionStatus.CONNECTING))
        logger.info("Connecting to chat socket (attempt=%d)", self._reconnect.attempt_count)
        self._reader_task = loop.create_task(self._run(generation, url))
        return True

    def reset_attempts(self) -> None:
        """Forget previous failures so a manual retry starts from attempt one."""

        self._reconnect.reset()

    def disconnect(self, reason: str = "User disconnect") -> None:
        """Close intentionally; no reconnect will follow."""

        had_socket = self._ws is not None
        self._teardown(reason)
        self._reconnect.reset()
        if self._state.status is ConnectionStatus.IDLE:
            return
        if had_socket:
            self._set_state(ConnectionState(ConnectionStatus.CLOSING, CLOSE_NORMAL, reason))
        self._set_state(ConnectionState(ConnectionStatus.CLOSED, CLOSE_NORMAL, reason))
        logger.info("Chat socket disconnected (%s)", reason)

    def send(self, text: str) -> bool:
        """Queue *text* for the socket; False when the socket is not open."""

        outbox = self._outbox
        if not self._state.is_open or outbox is None:
            logger.debug("send rejected: socket is %s", self._state.status.value)
            return False
        outbox.put_nowait(text)
        return True

    def call_later(self, delay_s: float, callback: Callable[[], Any]) -> str:
        """Arm a cosmetic timer that dies with the next connect/disconnect."""

        return self.timers.call_later(delay_s, callback)

    # ------------------------------------------------------------------
    async def _run(self, generation: int, url: str) -> None:
        try:
            ws = await self._connector(url)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            msg = str(exc) or exc.__class__.__name__
            if isinstance(exc, (OSError, asyncio.TimeoutError)):
                logger.info("Chat socket unavailable (%s)", msg)
            else:
                logger.warning("Chat socket handshake failed (%s)", msg)
            if generation == self._generation:
                self._notify(self.handle_transport_error, exc)
            self._on_closed(generation, CLOSE_ABNORMAL, msg)
            return

        if generation != self._generation:
            await self._close_quietly(ws, CLOSE_NORMAL, "Superseded by new connection")
            return

        self._on_open(generation, ws)
        try:
            async for raw in ws:
                self._on_message(generation, raw)
                if generation != self._generation:
                    return
        except asyncio.CancelledError:
            raise
        except ConnectionClosed:
            pass
        except Exception as exc:
            logger.warning("Chat socket reader failed: %s", exc, exc_info=True)
            if generation == self._generation:
                self._notify(self.handle_transport_error, exc)
            await self._close_quietly(ws, CLOSE_INTERNAL_ERROR, "reader failure")

        code = getattr(ws, "close_code", None)
        reason = getattr(ws, "close_reason", None)
        self._on_closed(
            generation,
            int(code) if code is not None else CLOSE_ABNORMAL,
            str(reason or ""),
        )

    def _on_open(self, generation: int, ws: Any) -> None:
        if generation != self._generation:
            return
        self._ws = ws
        self._outbox = asyncio.Queue()
        self._sender_task = asyncio.get_running_loop().create_task(
            self._sender(generation, ws, self._outbox)
        )
        self._reconnect.reset()
        self._set_state(ConnectionState(ConnectionStatus.OPEN))
        logger.info("Chat socket open")
        self._arm_heartbeat(generation)
        self._notify(self.handle_open)

    def _on_message(self, generation: int, raw: Any) -> None:
        if generation != self._generation:
            return
        if _CONN_DEBUG:
            logger.debug("chat socket <- %s", raw)
        self._notify(self.handle_message, raw)

    def _on_closed(self, generation: int, code: int, reason: str) -> None:
        if generation != self._generation:
            logger.debug("Ignoring close %s from superseded socket", code)
            return
        self.timers.cancel(HEARTBEAT_TIMER)
        self._reader_task = None
        self._release_transport()
        self._set_state(ConnectionState(ConnectionStatus.CLOSED, code, reason))
        logger.info("Chat socket closed: code=%s reason=%s", code, reason or "-")

        if code == CLOSE_NORMAL:
            self._notify(self.handle_stopped, code, reason)
            return
        terminal = NON_RETRYABLE_CODES.get(code)
        if terminal is not None:
            logger.warning("Chat socket rejected with %s; not reconnecting", code)
            self._notify(self.handle_terminal, code, terminal)
            return

        if self._reconnect.exhausted:
            logger.warning(
                "Chat socket reconnect gave up after %d attempts",
                self._reconnect.attempt_count,
            )
            self._notify(self.handle_terminal, code, RECONNECT_FAILED_MESSAGE)
            return
        attempt = self._reconnect.next_attempt()
        delay = self.policy.delay(attempt)
        self._reconnect.attempt_count = attempt
        logger.info("Reconnecting in %.1fs (attempt %d/%d)", delay, attempt, self.policy.max_attempts)
        self.timers.call_later(delay, self._reconnect_due, name=RECONNECT_TIMER)
        self._notify(self.handle_reconnect_scheduled, attempt, delay)

    def _reconnect_due(self) -> None:
        if not self.connect():
            logger.warning("Reconnect abandoned: credential or chat id no longer available")
            self._notify(self.handle_terminal, CLOSE_ABNORMAL, RECONNECT_FAILED_MESSAGE)

    # ------------------------------------------------------------------
    def _arm_heartbeat(self, generation: int) -> None:
        interval = self.config.heartbeat_s
        if interval <= 0:
            return
        self.timers.call_later(interval, lambda: self._heartbeat_due(generation), name=HEARTBEAT_TIMER)

    def _heartbeat_due(self, generation: int) -> None:
        if generation != self._generation or not self.is_open:
            return
        self._notify(self.heartbeat)
        self._arm_heartbeat(generation)

    async def _sender(self, generation: int, ws: Any, outbox: asyncio.Queue[str]) -> None:
        while True:
            msg = await outbox.get()
            if _CONN_DEBUG:
                logger.debug("chat socket -> %s", msg)
            try:
                await ws.send(msg)
            except ConnectionClosed:
                logger.debug("Chat socket sender stopped: connection closed")
                return
            except Exception as exc:
                logger.warning("Chat socket send failed (%s); closing socket", exc)
                if generation == self._generation:
                    self._notify(self.handle_transport_error, exc)
                await self._close_quietly(ws, CLOSE_INTERNAL_ERROR, "send failure")
                return

    # ------------------------------------------------------------------
    def _teardown(self, reason: str) -> None:
        """Invalidate the current generation and release everything it owns."""

        self._generation += 1
        self.timers.cancel_all()
        ws = self._ws
        reader = self._reader_task
        self._reader_task = None
        self._release_transport()
        if ws is not None:
            self._spawn(self._close_quietly(ws, CLOSE_NORMAL, reason))
        if reader is not None and not reader.done() and reader is not _current_task():
            reader.cancel()

    def _release_transport(self) -> None:
        sender = self._sender_task
        self._sender_task = None
        if sender is not None and not sender.done():
            sender.cancel()
        self._ws = None
        self._outbox = None

    async def _close_quietly(self, ws: Any, code: int, reason: str) -> None:
        try:
            await ws.close(code=code, reason=reason)
        except Exception:
            logger.debug("Chat socket close failed", exc_info=True)

    def _spawn(self, coro: Awaitable[None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; dropping socket close")
            coro.close()  # type: ignore[attr-defined]
            return
        loop.create_task(coro)  # type: ignore[arg-type]

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        self._notify(self.handle_state, state)

    def _notify(self, callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.debug("connection callback %r failed", callback, exc_info=True)


def _current_task() -> Optional[asyncio.Task[Any]]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


__all__ = [
    "HEARTBEAT_TIMER",
    "NON_RETRYABLE_CODES",
    "RECONNECT_FAILED_MESSAGE",
    "RECONNECT_TIMER",
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    "Connector",
    "websockets_connector",
]
