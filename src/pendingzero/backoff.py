"""Wait durations between apply attempts."""

from __future__ import annotations

from dataclasses import dataclass

from pendingzero.state import ConvergenceConfig, OutcomeKind


@dataclass(frozen=True)
class BackoffPolicy:
    base_delay_ms: int = 2000
    max_delay_ms: int = 30000
    rate_limit_delay_ms: int = 300000
    success_pause_ms: int = 1000

    def compute_wait(self, kind: OutcomeKind, attempts_used: int) -> int:
        """Return the pause in milliseconds before the next observation."""
        if kind is OutcomeKind.RATE_LIMITED:
            return self.rate_limit_delay_ms
        if kind is OutcomeKind.SUCCESS:
            return self.success_pause_ms
        if kind is OutcomeKind.TERMINAL_FAILURE:
            return 0
        return min(self.base_delay_ms * max(1, attempts_used), self.max_delay_ms)

    @classmethod
    def from_config(cls, config: ConvergenceConfig) -> "BackoffPolicy":
        return cls(
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
            rate_limit_delay_ms=config.rate_limit_delay_ms,
            success_pause_ms=config.success_pause_ms,
        )
