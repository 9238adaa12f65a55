from __future__ import annotations

import logging

from kubera_chat.utils.debug import maybe_enable_debug_logger
from kubera_chat.utils.env import env_bool, env_float, env_int, env_str


def test_env_helpers_read_mapping() -> None:
    env = {"A": "x", "B": "yes", "C": "12", "D": "2.5", "E": ""}

    assert env_str("A", env=env) == "x"
    assert env_str("E", "fallback", env=env) == "fallback"
    assert env_bool("B", env=env) is True
    assert env_int("C", 0, env=env) == 12
    assert env_float("D", 0.0, env=env) == 2.5


def test_env_helpers_fall_back_on_garbage() -> None:
    env = {"C": "twelve", "D": "fast", "B": "maybe"}

    assert env_int("C", 5, env=env) == 5
    assert env_float("D", 1.5, env=env) == 1.5
    assert env_bool("B", True, env=env) is True
    assert env_int("MISSING", 3, env=env) == 3


def test_env_helpers_strip_whitespace() -> None:
    env = {"A": "  wss://host  ", "B": " ON ", "C": "   ", "D": " 7 "}

    assert env_str("A", env=env) == "wss://host"
    assert env_bool("B", env=env) is True
    assert env_int("C", 4, env=env) == 4
    assert env_int("D", 0, env=env) == 7


def test_env_helpers_default_to_process_environment(monkeypatch) -> None:
    monkeypatch.setenv("KUBERA_TEST_FLAG", "off")

    assert env_bool("KUBERA_TEST_FLAG", True) is False


def test_debug_logger_disabled_by_default() -> None:
    logger = logging.getLogger("kubera_chat.tests.debug_off")

    assert maybe_enable_debug_logger(logger, env={}) is False
    assert logger.handlers == []


def test_debug_logger_attaches_single_handler() -> None:
    logger = logging.getLogger("kubera_chat.tests.debug_on")
    env = {"KUBERA_CHAT_DEBUG": "1"}

    try:
        assert maybe_enable_debug_logger(logger, env=env) is True
        assert maybe_enable_debug_logger(logger, env=env) is True
        local = [h for h in logger.handlers if getattr(h, "_kubera_chat_local", False)]
        assert len(local) == 1
        assert logger.level == logging.DEBUG
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
