"""Typed lookups of ``KUBERA_*`` settings.

Every helper takes an optional ``env`` mapping (``os.environ`` when omitted)
and returns *default* for unset, blank or unparseable values.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Mapping, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_BOOL_WORDS = {
    "1": True, "true": True, "yes": True, "on": True,
    "0": False, "false": False, "no": False, "off": False,
}


def _parse(
    name: str,
    default: T,
    parser: Callable[[str], T],
    env: Optional[Mapping[str, str]],
) -> T:
    source = os.environ if env is None else env
    text = (source.get(name) or "").strip()
    if not text:
        return default
    try:
        return parser(text)
    except ValueError:
        logger.debug("ignoring %s=%r; using %r", name, text, default)
        return default


def _parse_bool(text: str) -> bool:
    try:
        return _BOOL_WORDS[text.lower()]
    except KeyError:
        raise ValueError(f"not a boolean: {text!r}") from None


def env_str(name: str, default: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    return _parse(name, default, str, env)


def env_bool(name: str, default: bool = False, env: Optional[Mapping[str, str]] = None) -> bool:
    return _parse(name, default, _parse_bool, env)


def env_int(name: str, default: int, env: Optional[Mapping[str, str]] = None) -> int:
    return _parse(name, default, lambda text: int(text, 10), env)


def env_float(name: str, default: float, env: Optional[Mapping[str, str]] = None) -> float:
    return _parse(name, default, float, env)


__all__ = ["env_bool", "env_float", "env_int", "env_str"]
