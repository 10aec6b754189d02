"""Drive a remote set of pending migrations to zero, one item at a time."""

from pendingzero.controller import ConvergenceController, run
from pendingzero.state import (
    ApplyOutcome,
    AttemptRecord,
    ConvergenceConfig,
    ConvergenceResult,
    ObservedState,
    OutcomeKind,
    PendingItem,
    RawSignal,
    StopReason,
)

__all__ = [
    "ApplyOutcome",
    "AttemptRecord",
    "ConvergenceConfig",
    "ConvergenceController",
    "ConvergenceResult",
    "ObservedState",
    "OutcomeKind",
    "PendingItem",
    "RawSignal",
    "StopReason",
    "run",
]
