"""
Runtime configuration for the chat streaming client.

Values come from ``KUBERA_*`` environment variables with the defaults the
backend is deployed with. Unparseable values fall back to the default rather
than failing the session.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from kubera_chat.utils.env import env_float, env_int, env_str

# Close codes with fixed meaning on the chat socket.
CLOSE_NORMAL = 1000
CLOSE_ABNORMAL = 1006
CLOSE_INTERNAL_ERROR = 1011
CLOSE_UNAUTHENTICATED = 4001
CLOSE_FORBIDDEN = 4003


@dataclass(frozen=True)
class ClientConfig:
    ws_base: str = "ws://localhost:8000"
    ws_path: str = "/ws/chat"

    heartbeat_s: float = 30.0
    open_timeout_s: float = 10.0

    # Backoff: delay(n) = min(base * 2**(n-1), max)
    reconnect_base_s: float = 3.0
    reconnect_max_s: float = 30.0
    reconnect_attempts: int = 5

    # How long a finished tool stays in the visible tool list
    tool_expiry_s: float = 2.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "heartbeat_s", max(0.0, float(self.heartbeat_s)))
        object.__setattr__(self, "open_timeout_s", max(0.0, float(self.open_timeout_s)))
        object.__setattr__(self, "reconnect_base_s", max(0.0, float(self.reconnect_base_s)))
        object.__setattr__(
            self,
            "reconnect_max_s",
            max(float(self.reconnect_base_s), float(self.reconnect_max_s)),
        )
        object.__setattr__(self, "reconnect_attempts", max(0, int(self.reconnect_attempts)))
        object.__setattr__(self, "tool_expiry_s", max(0.0, float(self.tool_expiry_s)))

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        defaults = ClientConfig()
        return ClientConfig(
            ws_base=env_str("KUBERA_WS_BASE", defaults.ws_base, env) or defaults.ws_base,
            ws_path=env_str("KUBERA_WS_PATH", defaults.ws_path, env) or defaults.ws_path,
            heartbeat_s=env_float("KUBERA_HEARTBEAT_S", defaults.heartbeat_s, env),
            open_timeout_s=env_float("KUBERA_OPEN_TIMEOUT_S", defaults.open_timeout_s, env),
            reconnect_base_s=env_float("KUBERA_RECONNECT_BASE_S", defaults.reconnect_base_s, env),
            reconnect_max_s=env_float("KUBERA_RECONNECT_MAX_S", defaults.reconnect_max_s, env),
            reconnect_attempts=env_int("KUBERA_RECONNECT_ATTEMPTS", defaults.reconnect_attempts, env),
            tool_expiry_s=env_float("KUBERA_TOOL_EXPIRY_S", defaults.tool_expiry_s, env),
        )


__all__ = [
    "CLOSE_ABNORMAL",
    "CLOSE_FORBIDDEN",
    "CLOSE_INTERNAL_ERROR",
    "CLOSE_NORMAL",
    "CLOSE_UNAUTHENTICATED",
    "ClientConfig",
]
