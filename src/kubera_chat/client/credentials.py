"""Bearer credential lookup and socket endpoint construction."""

from __future__ import annotations

import os
from typing import Optional, Protocol
from urllib.parse import urlencode

TOKEN_ENV = "KUBERA_TOKEN"


class TokenProvider(Protocol):
    """Anything that can hand out the current access token (or None)."""

    def get_token(self) -> Optional[str]: ...


class StaticTokenProvider:
    def __init__(self, token: Optional[str]) -> None:
        self._token = token

    def get_token(self) -> Optional[str]:
        return self._token or None


class EnvTokenProvider:
    """Read the token from the environment on every call so rotations are seen."""

    def __init__(self, name: str = TOKEN_ENV) -> None:
        self.name = name

    def get_token(self) -> Optional[str]:
        value = os.getenv(self.name, "").strip()
        return value or None


def build_socket_url(base_url: str, path: str, token: str, chat_id: str) -> str:
    """Return ``<base><path>?token=..&chat_id=..`` with both values URL-encoded."""

    base = base_url.rstrip("/")
    if path and not path.startswith("/"):
        path = "/" + path
    query = urlencode({"token": token, "chat_id": chat_id})
    return f"{base}{path}?{query}"


__all__ = [
    "TOKEN_ENV",
    "EnvTokenProvider",
    "StaticTokenProvider",
    "TokenProvider",
    "build_socket_url",
]
