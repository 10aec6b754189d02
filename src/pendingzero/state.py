"""Typed state for convergence runs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OutcomeKind(str, Enum):
    """Closed set of results an apply attempt can have."""

    SUCCESS = "success"
    TERMINAL_FAILURE = "terminal_failure"
    TRANSIENT_FAILURE = "transient_failure"
    RATE_LIMITED = "rate_limited"
    INDETERMINATE = "indeterminate"


class StopReason(str, Enum):
    CONVERGED = "converged"
    TERMINAL_FAILURE = "terminal_failure"
    ATTEMPT_BUDGET_EXHAUSTED = "attempt_budget_exhausted"
    ADAPTER_UNAVAILABLE = "adapter_unavailable"
    CANCELLED = "cancelled"


class ObservedState(BaseModel):
    """One snapshot of the target, read from a single observe() call."""

    model_config = ConfigDict(frozen=True)

    pending_count: int = Field(ge=0)
    applied_count: int = Field(default=0, ge=0)
    pending_items: list[str] = Field(default_factory=list)


class PendingItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)


class RawSignal(BaseModel):
    """What an adapter saw after applying an item."""

    status_code: int | None = None
    text: str = ""


class ApplyOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    message: str = ""


class AttemptRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    attempt_number: int = Field(ge=1)
    item_label: str = ""
    pending_before: int
    outcome: ApplyOutcome
    pending_after: int | None = None
    waited_ms: int = 0
    timestamp: datetime = Field(default_factory=utc_now)

    def to_audit_payload(self) -> dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "item_label": self.item_label,
            "pending_before": self.pending_before,
            "pending_after": self.pending_after,
            "outcome_kind": self.outcome.kind.value,
            "message": self.outcome.message,
            "waited_ms": self.waited_ms,
            "timestamp": self.timestamp.isoformat(),
        }


class ConvergenceResult(BaseModel):
    """Final verdict of one run. Built once, never mutated."""

    model_config = ConfigDict(frozen=True)

    final_pending_count: int | None
    total_applied: int = 0
    attempts_used: int = 0
    stop_reason: StopReason
    message: str = ""
    records: tuple[AttemptRecord, ...] = ()
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: datetime = Field(default_factory=utc_now)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def converged(self) -> bool:
        return self.final_pending_count == 0

    def summary(self) -> dict[str, Any]:
        return {
            "final_pending_count": self.final_pending_count,
            "total_applied": self.total_applied,
            "attempts_used": self.attempts_used,
            "converged": self.converged,
            "stop_reason": self.stop_reason.value,
            "message": self.message,
            "records": len(self.records),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
        }


class ConvergenceConfig(BaseModel):
    """Controller-facing knobs. Settings builds one of these."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=10, ge=1)
    per_attempt_timeout: float | None = Field(default=60.0, gt=0)
    initial_pending_check: bool = True
    max_consecutive_rate_limits: int = Field(default=5, ge=0)
    base_delay_ms: int = Field(default=2000, ge=0)
    max_delay_ms: int = Field(default=30000, ge=0)
    rate_limit_delay_ms: int = Field(default=300000, ge=0)
    success_pause_ms: int = Field(default=1000, ge=0)
