"""Audit recorders for convergence runs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from hashlib import sha256
import json
import logging
from pathlib import Path
from typing import Any, Iterable
from uuid import uuid4

from pendingzero.state import AttemptRecord, ConvergenceResult, OutcomeKind
from pendingzero.storage import AuditStore, canonical_json, chain_hash
from pendingzero.util.logging import get_logger, redact as redact_text


REDACT_KEYS = ("key", "token", "password", "secret")
STRATEGY = "one migration per attempt with classified retries"


class AuditRecorder(ABC):
    """Receives every attempt and the final verdict of a run."""

    @abstractmethod
    def append(self, record: AttemptRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    def finalize(self, result: ConvergenceResult) -> None:
        raise NotImplementedError


class InMemoryRecorder(AuditRecorder):
    def __init__(self) -> None:
        self.records: list[AttemptRecord] = []
        self.results: list[ConvergenceResult] = []

    @property
    def result(self) -> ConvergenceResult | None:
        return self.results[-1] if self.results else None

    def append(self, record: AttemptRecord) -> None:
        self.records.append(record)

    def finalize(self, result: ConvergenceResult) -> None:
        self.results.append(result)


class LoggingRecorder(AuditRecorder):
    def __init__(self, name: str = "pendingzero.audit") -> None:
        self.logger = get_logger(name)

    def append(self, record: AttemptRecord) -> None:
        level = logging.INFO if record.outcome.kind is OutcomeKind.SUCCESS else logging.WARNING
        self.logger.log(
            level,
            "attempt %d %s: %s pending %s -> %s (waited %dms) %s",
            record.attempt_number,
            record.item_label or "<unnamed>",
            record.outcome.kind.value,
            record.pending_before,
            "?" if record.pending_after is None else record.pending_after,
            record.waited_ms,
            redact_text(record.outcome.message),
        )

    def finalize(self, result: ConvergenceResult) -> None:
        self.logger.info(
            "run finished: %s, applied %d, attempts %d, final pending %s",
            result.stop_reason.value,
            result.total_applied,
            result.attempts_used,
            "?" if result.final_pending_count is None else result.final_pending_count,
        )


class CompositeRecorder(AuditRecorder):
    def __init__(self, recorders: Iterable[AuditRecorder]) -> None:
        self.recorders = list(recorders)

    def append(self, record: AttemptRecord) -> None:
        for recorder in self.recorders:
            recorder.append(record)

    def finalize(self, result: ConvergenceResult) -> None:
        for recorder in self.recorders:
            recorder.finalize(result)


def redact(payload: Any, rules: Iterable[str] = REDACT_KEYS) -> Any:
    if isinstance(payload, dict):
        redacted: dict[str, Any] = {}
        for key, value in payload.items():
            if any(rule in key.lower() for rule in rules):
                redacted[key] = "[redacted]"
            else:
                redacted[key] = redact(value, rules)
        return redacted
    if isinstance(payload, list):
        return [redact(item, rules) for item in payload]
    if isinstance(payload, str):
        text = redact_text(payload)
        if len(text) > 2000:
            return text[:2000] + "...[truncated]"
        return text
    return payload


@dataclass
class AuditEvent:
    timestamp: str
    run_id: str
    event_type: str
    payload: dict[str, Any]
    payload_hash: str
    prev_hash: str
    event_hash: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "run_id": self.run_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "payload_hash": self.payload_hash,
            "prev_hash": self.prev_hash,
            "event_hash": self.event_hash,
        }


class AuditLogRecorder(AuditRecorder):
    """Hash-chained JSONL audit trail plus a JSON report per run."""

    def __init__(
        self,
        workspace_dir: Path,
        run_id: str | None = None,
        store: AuditStore | None = None,
    ) -> None:
        self.workspace_dir = Path(workspace_dir)
        self.run_id = run_id or str(uuid4())
        self.store = store
        self._prev_hash = ""
        self.report_path: Path | None = None

    @property
    def audit_path(self) -> Path:
        return self.workspace_dir / "audit" / f"{self.run_id}.jsonl"

    def append(self, record: AttemptRecord) -> None:
        self.emit("attempt", record.to_audit_payload())

    def finalize(self, result: ConvergenceResult) -> None:
        self.emit("summary", result.summary())
        self.report_path = self._write_report(result)

    def emit(self, event_type: str, payload: dict[str, Any]) -> AuditEvent:
        timestamp = datetime.now(timezone.utc).isoformat()
        safe_payload = redact(payload)
        payload_hash = sha256(canonical_json(safe_payload).encode("utf-8")).hexdigest()
        event_hash = chain_hash(self._prev_hash, payload_hash, event_type, timestamp)
        event = AuditEvent(
            timestamp=timestamp,
            run_id=self.run_id,
            event_type=event_type,
            payload=safe_payload,
            payload_hash=payload_hash,
            prev_hash=self._prev_hash,
            event_hash=event_hash,
        )
        self._prev_hash = event_hash
        self._write_jsonl(event)
        if self.store:
            self.store.append_event(event.to_dict())
        return event

    def _write_jsonl(self, event: AuditEvent) -> None:
        self.audit_path.parent.mkdir(parents=True, exist_ok=True)
        with self.audit_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(event.to_dict(), ensure_ascii=False) + "\n")

    def _write_report(self, result: ConvergenceResult) -> Path:
        report_dir = self.workspace_dir / "reports"
        report_dir.mkdir(parents=True, exist_ok=True)
        report_path = report_dir / f"{self.run_id}.json"
        report = {
            "runId": self.run_id,
            "timestamp": result.finished_at.isoformat(),
            "strategy": STRATEGY,
            "totalApplied": result.total_applied,
            "attemptsUsed": result.attempts_used,
            "finalPendingCount": result.final_pending_count,
            "zeroPendingAchieved": result.converged,
            "stopReason": result.stop_reason.value,
            "message": redact_text(result.message),
            "attempts": [redact(record.to_audit_payload()) for record in result.records],
        }
        report_path.write_text(json.dumps(report, indent=2, ensure_ascii=False), encoding="utf-8")
        return report_path


def read_audit_log(path: Path) -> list[dict[str, Any]]:
    with path.open("r", encoding="utf-8") as handle:
        return [json.loads(line) for line in handle if line.strip()]
