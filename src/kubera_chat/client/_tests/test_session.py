from __future__ import annotations

import asyncio
import json

import pytest

pytest.importorskip("websockets")

from kubera_chat.client.assembler import ToolStatus
from kubera_chat.client.config import ClientConfig
from kubera_chat.client.connection import (
    NON_RETRYABLE_CODES,
    ConnectionState,
    ConnectionStatus,
)
from kubera_chat.client.credentials import StaticTokenProvider
from kubera_chat.client.session import (
    CONNECTION_ERROR_MESSAGE,
    GENERIC_ERROR_MESSAGE,
    ChatSession,
)
from kubera_chat.client.session_state import SessionState
from kubera_chat.client._tests._fakes import FakeClock, FakeConnector, ManualScheduler, drain


class _Harness:
    def __init__(self, token="tok", chat_id="chat-1") -> None:
        self.connector = FakeConnector()
        self.scheduler = ManualScheduler()
        self.clock = FakeClock()
        self.completed: list = []
        self.errors: list = []
        self.session = ChatSession(
            StaticTokenProvider(token),
            chat_id,
            ClientConfig(),
            on_message_complete=self.completed.append,
            on_error=self.errors.append,
            connector=self.connector,
            scheduler=self.scheduler,
            clock=self.clock,
        )

    @property
    def ws(self):
        return self.connector.latest

    async def open(self) -> None:
        assert self.session.connect()
        await drain()
        assert self.session.state.is_connected

    async def feed(self, *frames) -> None:
        for frame in frames:
            self.ws.feed(frame)
        await drain()


def test_socket_url_carries_token_and_chat() -> None:
    h = _Harness(token="a b", chat_id="chat-1")

    async def runner() -> None:
        await h.open()

    asyncio.run(runner())

    assert h.connector.urls == ["ws://localhost:8000/ws/chat?token=a+b&chat_id=chat-1"]


def test_connect_without_token_stays_idle() -> None:
    h = _Harness(token=None)

    assert h.session.connect() is False
    assert h.session.state == SessionState()
    assert h.connector.urls == []


def test_tool_then_text_reply_is_assembled() -> None:
    h = _Harness()
    seen: list = []

    async def runner() -> None:
        await h.open()
        h.session.subscribe(seen.append)

        assert h.session.send_message("What is the price?") is True
        await drain()
        assert h.ws.sent_frames() == [
            {"type": "message", "chat_id": "chat-1", "message": "What is the price?"}
        ]
        assert h.session.state.is_streaming

        await h.feed({"type": "tool_executing", "tool_name": "lookup", "tool_id": "t1"})
        assert [(t.name, t.status) for t in h.session.state.tools] == [("lookup", ToolStatus.EXECUTING)]

        await h.feed({"type": "tool_complete", "tool_name": "lookup"})
        assert [(t.name, t.status) for t in h.session.state.tools] == [("lookup", ToolStatus.COMPLETE)]

        await h.feed({"type": "text_chunk", "content": "Price is ₹100"})
        assert h.session.state.streaming_content == "Price is ₹100"

        await h.feed({"type": "message_complete", "tokens_used": 42, "tools_used": ["lookup"]})

    asyncio.run(runner())

    state = h.session.state
    assert not state.is_streaming
    assert state.streaming_content == ""
    assert state.tools == ()
    assert [m.content for m in h.completed] == ["Price is ₹100"]
    assert h.completed[0].tool_names == ("lookup",)
    assert h.completed[0].tokens_used == 42
    assert state.last_completed == h.completed[0]
    assert any(s.streaming_content == "Price is ₹100" for s in seen)


def test_finished_tool_expires_from_visible_list() -> None:
    h = _Harness()

    async def runner() -> None:
        await h.open()
        h.session.send_message("hi")
        await h.feed(
            {"type": "tool_executing", "tool_name": "news", "tool_id": "n1"},
            {"type": "tool_error", "tool_name": "news", "error": "timeout"},
        )
        tools = h.session.state.tools
        assert tools[0].status is ToolStatus.ERROR
        assert tools[0].error == "timeout"

        h.scheduler.fire_delay(2.0)
        assert h.session.state.tools == ()
        assert h.session.state.is_streaming

    asyncio.run(runner())


def test_chart_is_attached_to_completed_message() -> None:
    h = _Harness()

    async def runner() -> None:
        await h.open()
        h.session.send_message("chart please")
        await h.feed(
            {"type": "chart_generated", "chart_available": True, "chart_url": "https://c/x.png", "stock_symbol": "TCS"},
        )
        assert h.session.state.chart.url == "https://c/x.png"
        await h.feed({"type": "text_chunk", "content": "Here"}, {"type": "message_complete"})

    asyncio.run(runner())

    assert h.completed[0].chart_url == "https://c/x.png"
    assert h.completed[0].chart_symbol == "TCS"
    assert h.session.state.chart is None


def test_rate_limit_exceeded_mid_stream_keeps_socket_open() -> None:
    h = _Harness()

    async def runner() -> None:
        await h.open()
        h.session.send_message("hi")
        await h.feed(
            {"type": "text_chunk", "content": "partial"},
            {"type": "rate_limit_exceeded", "message": "slow down"},
        )

    asyncio.run(runner())

    state = h.session.state
    assert not state.is_streaming
    assert state.streaming_content == ""
    assert state.error == "slow down"
    assert state.connection.status is ConnectionStatus.OPEN
    assert h.errors == ["slow down"]
    assert h.completed == []


def test_error_frame_without_message_uses_default_text() -> None:
    h = _Harness()

    async def runner() -> None:
        await h.open()
        await h.feed({"type": "error"})

    asyncio.run(runner())

    assert h.session.state.error == GENERIC_ERROR_MESSAGE


def test_malformed_and_unknown_payloads_change_nothing() -> None:
    h = _Harness()

    async def runner() -> None:
        await h.open()
        h.session.send_message("hi")
        await h.feed({"type": "text_chunk", "content": "A"})
        before = h.session.state

        await h.feed("not json", {"type": "mystery"}, {"type": "text_chunk"}, '["list"]')

        assert h.session.state is before
        assert h.session.state.connection.status is ConnectionStatus.OPEN

    asyncio.run(runner())


def test_send_while_not_connected_is_rejected_without_mutation() -> None:
    h = _Harness()
    before = h.session.state

    assert h.session.send_message("hello") is False
    assert h.session.state is before


def test_session_metadata_frames() -> None:
    h = _Harness()

    async def runner() -> None:
        await h.open()
        await h.feed(
            {"type": "connection", "user_id": "u-7"},
            {
                "type": "rate_limit_info",
                "current_usage": {"burst": 1, "per_chat": 2, "hourly": 3, "daily": 4},
                "limits": {"burst": 10, "per_chat": 20, "hourly": 30, "daily": 40},
            },
            {"type": "message_received", "message_id": "m-1"},
        )
        h.clock.advance(5)
        await h.feed({"type": "pong"})

    asyncio.run(runner())

    state = h.session.state
    assert state.user_id == "u-7"
    assert state.last_message_id == "m-1"
    assert state.rate_limits.daily.current == 4
    assert state.rate_limits.per_chat.limit == 20
    assert state.last_pong_at == 1005.0


def test_abnormal_close_aborts_turn_and_schedules_reconnect() -> None:
    h = _Harness()

    async def runner() -> None:
        await h.open()
        h.session.send_message("hi")
        await h.feed({"type": "text_chunk", "content": "half"})
        h.ws.drop(1006)
        await drain()

        state = h.session.state
        assert not state.is_streaming
        assert state.streaming_content == ""
        assert state.reconnecting
        assert state.reconnect_attempt == 1

        h.scheduler.fire_delay(3.0)
        await drain()

        state = h.session.state
        assert state.is_connected
        assert not state.reconnecting
        assert state.reconnect_attempt == 0

    asyncio.run(runner())


def test_server_normal_close_mid_stream_ends_session() -> None:
    h = _Harness()

    async def runner() -> None:
        task = asyncio.get_running_loop().create_task(h.session.run_until_disconnected())
        await drain()
        h.session.send_message("hi")
        await h.feed({"type": "text_chunk", "content": "par"})

        h.ws.drop(1000, "server bye")
        final = await asyncio.wait_for(task, timeout=1.0)

        assert final.connection.status is ConnectionStatus.CLOSED
        assert final.connection.close_code == 1000
        assert not final.is_streaming
        assert final.streaming_content == ""
        assert not final.reconnecting
        assert h.scheduler.live() == []

        assert h.session.reconnect() is True
        await drain()
        assert not h.session.state.is_streaming
        assert h.session.send_message("again") is True

    asyncio.run(runner())


@pytest.mark.parametrize("code", [4001, 4003])
def test_auth_rejection_fails_terminally(code) -> None:
    h = _Harness()

    async def runner() -> None:
        await h.open()
        h.ws.drop(code)
        await drain()

    asyncio.run(runner())

    state = h.session.state
    assert state.connection_failed
    assert not state.reconnecting
    assert state.error == NON_RETRYABLE_CODES[code]
    assert h.errors == [NON_RETRYABLE_CODES[code]]
    assert h.scheduler.live() == []


def test_manual_reconnect_clears_failure() -> None:
    h = _Harness()

    async def runner() -> None:
        await h.open()
        h.ws.drop(4001)
        await drain()
        assert h.session.state.connection_failed

        assert h.session.reconnect() is True
        await drain()

    asyncio.run(runner())

    state = h.session.state
    assert state.is_connected
    assert not state.connection_failed
    assert state.error is None


def test_handshake_failure_reports_connection_error() -> None:
    h = _Harness()
    h.connector.fail_next(OSError("refused"))

    async def runner() -> None:
        h.session.connect()
        await drain()

    asyncio.run(runner())

    state = h.session.state
    assert state.error == CONNECTION_ERROR_MESSAGE
    assert state.reconnecting
    assert h.scheduler.live_delays() == [3.0]


def test_disconnect_resets_to_clean_snapshot() -> None:
    h = _Harness()

    async def runner() -> None:
        await h.open()
        h.session.send_message("hi")
        await h.feed(
            {"type": "connection", "user_id": "u-7"},
            {"type": "tool_executing", "tool_name": "lookup"},
            {"type": "tool_complete", "tool_name": "lookup"},
        )
        h.session.disconnect()
        await drain()

    asyncio.run(runner())

    assert h.session.state == SessionState(
        connection=ConnectionState(ConnectionStatus.CLOSED, 1000, "User disconnect")
    )
    assert h.scheduler.live() == []
    assert h.ws.closed


def test_set_chat_replaces_socket_without_reconnect() -> None:
    h = _Harness()

    async def runner() -> None:
        await h.open()
        first = h.ws
        assert h.session.set_chat("chat-2") is True
        await drain()

        assert first.closed
        assert h.session.state.is_connected
        assert h.session.chat_id == "chat-2"
        assert h.scheduler.live_delays() == [30.0]

        assert h.session.set_chat(None) is False
        await drain()
        assert h.session.state.connection.status is ConnectionStatus.CLOSED

    asyncio.run(runner())

    assert h.connector.urls[-1].endswith("chat_id=chat-2")
    assert len(h.connector.urls) == 2


def test_run_until_disconnected_returns_final_state() -> None:
    h = _Harness()

    async def runner():
        task = asyncio.get_running_loop().create_task(h.session.run_until_disconnected())
        await drain()
        assert h.session.state.is_connected
        assert not task.done()

        h.session.disconnect()
        return await task

    final = asyncio.run(runner())

    assert final.connection.close_code == 1000
    assert not final.is_connected


def test_failing_callbacks_do_not_break_the_session() -> None:
    h = _Harness()

    def _boom(_):
        raise RuntimeError("callback failure")

    h.session.on_message_complete = _boom

    async def runner() -> None:
        await h.open()
        h.session.subscribe(_boom)
        h.session.send_message("hi")
        await h.feed({"type": "text_chunk", "content": "ok"}, {"type": "message_complete"})

    asyncio.run(runner())

    assert h.session.state.last_completed.content == "ok"
    assert json.loads(h.ws.sent[0])["message"] == "hi"
