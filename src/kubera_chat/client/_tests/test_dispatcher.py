from __future__ import annotations

import asyncio

import pytest

pytest.importorskip("websockets")

from kubera_chat.client.config import ClientConfig
from kubera_chat.client.connection import ConnectionManager, ConnectionStatus
from kubera_chat.client.dispatcher import OutboundDispatcher
from kubera_chat.client._tests._fakes import FakeConnector, ManualScheduler, drain


def _make(connector: FakeConnector) -> OutboundDispatcher:
    manager = ConnectionManager(
        lambda: "ws://localhost:8000/ws/chat?token=t&chat_id=c",
        ClientConfig(),
        connector=connector,
        scheduler=ManualScheduler(),
    )
    return OutboundDispatcher(manager)


def test_send_message_requires_open_socket() -> None:
    dispatcher = _make(FakeConnector())

    assert dispatcher.send_message("c", "hello") is False
    assert dispatcher.send_ping() is False


def test_send_message_and_ping_reach_socket_in_order() -> None:
    connector = FakeConnector()
    dispatcher = _make(connector)

    async def runner() -> None:
        dispatcher._connection.connect()
        await drain()

        assert dispatcher.send_message(None, "no chat") is False
        assert dispatcher.send_message("c", "hello") is True
        assert dispatcher.send_ping() is True
        await drain()

    asyncio.run(runner())

    assert connector.latest.sent_frames() == [
        {"type": "message", "chat_id": "c", "message": "hello"},
        {"type": "ping"},
    ]


def test_disconnect_closes_with_reason() -> None:
    connector = FakeConnector()
    dispatcher = _make(connector)

    async def runner() -> None:
        dispatcher._connection.connect()
        await drain()
        dispatcher.disconnect("bye")
        await drain()

    asyncio.run(runner())

    state = dispatcher._connection.state
    assert state.status is ConnectionStatus.CLOSED
    assert state.close_reason == "bye"
    assert connector.latest.close_code == 1000


def test_dispatcher_supplies_heartbeat_pings() -> None:
    connector = FakeConnector()
    dispatcher = _make(connector)
    manager = dispatcher._connection

    assert manager.heartbeat == dispatcher.send_ping
    assert manager.heartbeat() is False
