"""Opt-in DEBUG output for client loggers."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from .env import env_bool

DEBUG_ENV = "KUBERA_CHAT_DEBUG"
LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"


def maybe_enable_debug_logger(logger: logging.Logger, env: Optional[Mapping[str, str]] = None) -> bool:
    """Attach a local DEBUG handler to *logger* when ``KUBERA_CHAT_DEBUG`` is set.

    Returns True when debug output was enabled. Calling it twice on the same
    logger does not stack handlers.
    """

    if not env_bool(DEBUG_ENV, False, env):
        return False
    has_local = any(getattr(h, "_kubera_chat_local", False) for h in logger.handlers)
    if not has_local:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(logging.DEBUG)
        setattr(handler, "_kubera_chat_local", True)
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return True


__all__ = ["DEBUG_ENV", "LOG_FORMAT", "maybe_enable_debug_logger"]
