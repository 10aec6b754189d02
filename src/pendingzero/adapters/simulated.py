"""In-process target for dry runs and offline testing."""

from __future__ import annotations

from typing import Any

from pendingzero.adapters.base import TargetAdapter
from pendingzero.classifier import OutcomeClassifier
from pendingzero.failures import AdapterApplyFailed, NoSelectableItem
from pendingzero.state import ObservedState, OutcomeKind, PendingItem


class SimulatedAdapter(TargetAdapter):
    """Deterministic target used when no remote endpoint is configured.

    Each apply consumes the next scripted signal (or a plain success once the
    script runs out). Signals that classify as success move the head item to
    the applied list; an ``Exception`` instance in the script is raised as an
    apply failure.
    """

    def __init__(
        self,
        pending: list[str] | None = None,
        script: list[Any] | None = None,
        applied: list[str] | None = None,
    ) -> None:
        self.pending = list(pending or [])
        self.applied = list(applied or [])
        self._script = list(script or [])
        self._classifier = OutcomeClassifier()
        self.apply_calls: list[str] = []

    @classmethod
    def with_count(cls, count: int) -> "SimulatedAdapter":
        return cls(pending=[f"{index:04d}_simulated_migration.sql" for index in range(1, count + 1)])

    def observe(self) -> ObservedState:
        return ObservedState(
            pending_count=len(self.pending),
            applied_count=len(self.applied),
            pending_items=list(self.pending),
        )

    def select_next(self) -> PendingItem:
        if not self.pending:
            raise NoSelectableItem("no pending migrations to select")
        return PendingItem(label=self.pending[0])

    def apply_next(self, item: PendingItem) -> Any:
        self.apply_calls.append(item.label)
        signal: Any = self._script.pop(0) if self._script else f"Migration {item.label} applied successfully"
        if isinstance(signal, Exception):
            raise AdapterApplyFailed(str(signal)) from signal
        outcome = self._classifier.classify(signal)
        if outcome.kind is OutcomeKind.SUCCESS and item.label in self.pending:
            self.pending.remove(item.label)
            self.applied.append(item.label)
        return signal
