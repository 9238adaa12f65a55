"""Bounded exponential backoff for socket reconnects."""

from __future__ import annotations

from dataclasses import dataclass

from .config import ClientConfig


@dataclass(frozen=True)
class ReconnectPolicy:
    """Pure retry arithmetic; attempts are 1-based (first retry is attempt 1)."""

    max_attempts: int = 5
    base_delay_s: float = 3.0
    max_delay_s: float = 30.0

    @classmethod
    def from_config(cls, config: ClientConfig) -> "ReconnectPolicy":
        return cls(
            max_attempts=config.reconnect_attempts,
            base_delay_s=config.reconnect_base_s,
            max_delay_s=config.reconnect_max_s,
        )

    def eligible(self, attempt: int) -> bool:
        return 1 <= int(attempt) <= self.max_attempts

    def delay(self, attempt: int) -> float:
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        # Cap the exponent so very large attempt counts cannot overflow.
        exponent = min(int(attempt) - 1, 62)
        return min(self.base_delay_s * (2 ** exponent), self.max_delay_s)


@dataclass
class ReconnectState:
    policy: ReconnectPolicy
    attempt_count: int = 0

    def reset(self) -> None:
        self.attempt_count = 0

    def next_attempt(self) -> int:
        return self.attempt_count + 1

    @property
    def exhausted(self) -> bool:
        return not self.policy.eligible(self.next_attempt())


__all__ = ["ReconnectPolicy", "ReconnectState"]
