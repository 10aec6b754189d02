"""Outcome classification for apply signals.

Adapters report what happened after an apply in whatever shape they have at
hand: the visible status text of a UI, an HTTP status code, a JSON error
body. The classifier folds all of these into one ``OutcomeKind`` using a
fixed priority order, so the same text can never be read two different ways
by two different callers.
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Pattern

from pendingzero.state import ApplyOutcome, OutcomeKind, RawSignal

PRIORITY: tuple[OutcomeKind, ...] = (
    OutcomeKind.RATE_LIMITED,
    OutcomeKind.TERMINAL_FAILURE,
    OutcomeKind.TRANSIENT_FAILURE,
    OutcomeKind.SUCCESS,
)

DEFAULT_PATTERNS: dict[OutcomeKind, tuple[str, ...]] = {
    OutcomeKind.RATE_LIMITED: (
        r"rate[ -]?limit",
        r"too many (requests|attempts)",
        r"throttl",
        r"try again later",
    ),
    OutcomeKind.TERMINAL_FAILURE: (
        r"does not exist",
        r"permission denied",
        r"not authori[sz]ed",
        r"unauthori[sz]ed",
        r"forbidden",
        r"must be (the )?owner",
        r"not found",
        r"invalid (api )?key",
        r"jwt expired",
    ),
    OutcomeKind.TRANSIENT_FAILURE: (
        r"non-2xx",
        r"edge function",
        r"timed? ?out",
        r"\b5\d\d\b",
        r"service unavailable",
        r"bad gateway",
        r"connection (reset|refused)",
        r"failed",
        r"error",
    ),
    OutcomeKind.SUCCESS: (
        r"success(fully)?",
        r"\bapplied\b",
        r"\bcompleted?\b",
        r"\bhealed\b",
        "✅",
    ),
}

MAX_MESSAGE_CHARS = 500


def status_kind(status_code: int) -> OutcomeKind:
    if status_code == 429:
        return OutcomeKind.RATE_LIMITED
    if status_code == 408 or status_code >= 500:
        return OutcomeKind.TRANSIENT_FAILURE
    if 400 <= status_code < 500:
        return OutcomeKind.TERMINAL_FAILURE
    if 200 <= status_code < 300:
        return OutcomeKind.SUCCESS
    return OutcomeKind.INDETERMINATE


class OutcomeClassifier:
    """Map a raw apply signal to exactly one outcome kind."""

    def __init__(self, patterns: Mapping[OutcomeKind, tuple[str, ...]] | None = None) -> None:
        merged = dict(DEFAULT_PATTERNS)
        if patterns:
            merged.update(patterns)
        self._patterns: dict[OutcomeKind, list[Pattern[str]]] = {
            kind: [re.compile(expr, re.IGNORECASE) for expr in exprs]
            for kind, exprs in merged.items()
            if kind in PRIORITY
        }

    def classify(self, signal: Any) -> ApplyOutcome:
        normalized = normalize_signal(signal)
        candidates: set[OutcomeKind] = set()
        if normalized.status_code is not None:
            candidates.add(status_kind(normalized.status_code))
        candidates.update(self._text_kinds(normalized.text))
        kind = OutcomeKind.INDETERMINATE
        for ranked in PRIORITY:
            if ranked in candidates:
                kind = ranked
                break
        return ApplyOutcome(kind=kind, message=_describe(normalized, kind))

    def _text_kinds(self, text: str) -> set[OutcomeKind]:
        if not text.strip():
            return set()
        return {
            kind
            for kind, patterns in self._patterns.items()
            if any(pattern.search(text) for pattern in patterns)
        }


def normalize_signal(signal: Any) -> RawSignal:
    """Coerce the shapes adapters return into a RawSignal."""
    if signal is None:
        return RawSignal()
    if isinstance(signal, RawSignal):
        return signal
    if isinstance(signal, bool):
        return RawSignal(text="success" if signal else "failed")
    if isinstance(signal, int):
        return RawSignal(status_code=signal)
    if isinstance(signal, str):
        return RawSignal(text=signal)
    if isinstance(signal, Mapping):
        status = signal.get("status_code", signal.get("status"))
        status_code = status if isinstance(status, int) and not isinstance(status, bool) else None
        parts = [
            str(signal[key])
            for key in ("message", "error", "text", "body")
            if signal.get(key) not in (None, "")
        ]
        if isinstance(status, str):
            parts.insert(0, status)
        return RawSignal(status_code=status_code, text=" ".join(parts))
    return RawSignal(text=str(signal))


def _describe(signal: RawSignal, kind: OutcomeKind) -> str:
    text = signal.text.strip()
    if len(text) > MAX_MESSAGE_CHARS:
        text = text[:MAX_MESSAGE_CHARS] + "...[truncated]"
    if signal.status_code is not None:
        text = f"HTTP {signal.status_code}: {text}" if text else f"HTTP {signal.status_code}"
    if not text:
        return "no recognizable signal" if kind is OutcomeKind.INDETERMINATE else kind.value
    return text
