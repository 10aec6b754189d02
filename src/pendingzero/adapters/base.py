"""Target adapter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pendingzero.state import ObservedState, PendingItem


class TargetAdapter(ABC):
    """The remote system the controller drives toward zero pending items."""

    @abstractmethod
    def observe(self) -> ObservedState:
        """Read pending and applied counts together.

        Raises AdapterObserveFailed when no state can be produced.
        """
        raise NotImplementedError

    @abstractmethod
    def select_next(self) -> PendingItem:
        """Pick exactly one pending item. Raises NoSelectableItem if none."""
        raise NotImplementedError

    @abstractmethod
    def apply_next(self, item: PendingItem) -> Any:
        """Apply one item and return the raw signal for classification.

        Raises AdapterApplyFailed when nothing classifiable came back.
        """
        raise NotImplementedError
