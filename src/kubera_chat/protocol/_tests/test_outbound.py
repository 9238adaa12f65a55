from __future__ import annotations

import json

import pytest

from kubera_chat.protocol import build_chat_message, build_ping, encode_frame


def test_chat_message_wire_shape() -> None:
    frame = build_chat_message("chat-1", "What is TCS trading at?")

    encoded = encode_frame(frame)

    assert json.loads(encoded) == {
        "type": "message",
        "chat_id": "chat-1",
        "message": "What is TCS trading at?",
    }
    assert " " not in encoded.replace("What is TCS trading at?", "")


def test_chat_message_keeps_unicode() -> None:
    encoded = encode_frame(build_chat_message("chat-1", "₹100?"))

    assert "₹100?" in encoded


def test_ping_wire_shape() -> None:
    assert encode_frame(build_ping()) == '{"type":"ping"}'


def test_chat_message_requires_chat_id() -> None:
    with pytest.raises(ValueError):
        build_chat_message("", "hello")
