"""Adapter-facing error taxonomy."""

from __future__ import annotations


class AdapterError(RuntimeError):
    """Base class for faults raised by or on behalf of a target adapter."""


class AdapterObserveFailed(AdapterError):
    """observe() could not produce a state at all. Fatal to the run."""


class AdapterApplyFailed(AdapterError):
    """apply_next() raised before producing a classifiable signal."""


class NoSelectableItem(AdapterError):
    """The target reports pending work but offers nothing to select."""
