"""Controller implementing observe -> select -> apply -> classify -> wait."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime
import time
from typing import Any, Callable, Protocol, TypeVar

from pendingzero.adapters.base import TargetAdapter
from pendingzero.backoff import BackoffPolicy
from pendingzero.classifier import OutcomeClassifier
from pendingzero.failures import (
    AdapterApplyFailed,
    AdapterError,
    AdapterObserveFailed,
    NoSelectableItem,
)
from pendingzero.recorder import AuditRecorder, InMemoryRecorder
from pendingzero.state import (
    ApplyOutcome,
    AttemptRecord,
    ConvergenceConfig,
    ConvergenceResult,
    ObservedState,
    OutcomeKind,
    PendingItem,
    StopReason,
    utc_now,
)
from pendingzero.util.logging import get_logger, redact

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE = (OutcomeKind.TRANSIENT_FAILURE, OutcomeKind.INDETERMINATE)


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...


@dataclass
class RunLedger:
    """Per-run bookkeeping. Lives for one call to ``run`` only."""

    recorder: AuditRecorder
    records: list[AttemptRecord] = field(default_factory=list)
    attempts_used: int = 0
    total_applied: int = 0
    consecutive_rate_limits: int = 0
    last_pending: int | None = None
    unsettled: AttemptRecord | None = None
    recorder_errors: list[str] = field(default_factory=list)

    def open(self, record: AttemptRecord) -> None:
        self.unsettled = record

    def settle(self, pending_after: int | None) -> None:
        if self.unsettled is None:
            return
        record = self.unsettled.model_copy(update={"pending_after": pending_after})
        self.unsettled = None
        self.records.append(record)
        try:
            self.recorder.append(record)
        except Exception as exc:
            self.recorder_errors.append(f"append failed for attempt {record.attempt_number}: {exc}")
            logger.error(
                "Audit recorder rejected attempt %d: %s", record.attempt_number, redact(str(exc))
            )


class ConvergenceController:
    """Drives a target's pending count to zero, one item per attempt."""

    def __init__(
        self,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sleep = sleep
        self._clock = clock

    def run(
        self,
        adapter: TargetAdapter,
        classifier: OutcomeClassifier | None = None,
        backoff: BackoffPolicy | None = None,
        recorder: AuditRecorder | None = None,
        config: ConvergenceConfig | None = None,
        cancel: CancelSignal | None = None,
    ) -> ConvergenceResult:
        config = config or ConvergenceConfig()
        classifier = classifier or OutcomeClassifier()
        backoff = backoff or BackoffPolicy.from_config(config)
        recorder = recorder or InMemoryRecorder()
        ledger = RunLedger(recorder=recorder)
        started_at = self._clock()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pendingzero-adapter")
        try:
            stop_reason, message = self._loop(
                adapter, classifier, backoff, config, cancel, ledger, executor
            )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        if ledger.recorder_errors:
            message = (
                f"{message}; audit recorder failed {len(ledger.recorder_errors)} time(s): "
                f"{ledger.recorder_errors[0]}"
            )
        result = ConvergenceResult(
            final_pending_count=ledger.last_pending,
            total_applied=ledger.total_applied,
            attempts_used=ledger.attempts_used,
            stop_reason=stop_reason,
            message=message,
            records=tuple(ledger.records),
            started_at=started_at,
            finished_at=self._clock(),
        )
        try:
            recorder.finalize(result)
        except Exception as exc:
            logger.error("Audit recorder rejected the run summary: %s", redact(str(exc)))
        return result

    def _loop(
        self,
        adapter: TargetAdapter,
        classifier: OutcomeClassifier,
        backoff: BackoffPolicy,
        config: ConvergenceConfig,
        cancel: CancelSignal | None,
        ledger: RunLedger,
        executor: ThreadPoolExecutor,
    ) -> tuple[StopReason, str]:
        first_observation = True
        while True:
            if cancel is not None and cancel.is_set():
                ledger.settle(None)
                return StopReason.CANCELLED, "cancelled by caller"

            try:
                observed: ObservedState = self._call(
                    executor, adapter.observe, config, AdapterObserveFailed, "observe"
                )
            except AdapterObserveFailed as exc:
                ledger.settle(None)
                logger.error("Could not observe target: %s", redact(str(exc)))
                return StopReason.ADAPTER_UNAVAILABLE, str(exc)
            ledger.settle(observed.pending_count)
            ledger.last_pending = observed.pending_count
            short_circuit = config.initial_pending_check or not first_observation
            first_observation = False

            if observed.pending_count == 0 and short_circuit:
                return StopReason.CONVERGED, "no pending items remain"
            if ledger.attempts_used >= config.max_attempts:
                return (
                    StopReason.ATTEMPT_BUDGET_EXHAUSTED,
                    f"{observed.pending_count} pending after {ledger.attempts_used} attempts",
                )

            attempt_number = len(ledger.records) + 1
            attempt_started = self._clock()
            try:
                item: PendingItem = self._call(
                    executor, adapter.select_next, config, NoSelectableItem, "select"
                )
            except NoSelectableItem as exc:
                if observed.pending_count == 0:
                    return StopReason.CONVERGED, "no pending items remain"
                outcome = ApplyOutcome(
                    kind=OutcomeKind.TERMINAL_FAILURE,
                    message=f"no selectable item while {observed.pending_count} pending: {exc}",
                )
                ledger.open(
                    AttemptRecord(
                        attempt_number=attempt_number,
                        pending_before=observed.pending_count,
                        outcome=outcome,
                        timestamp=attempt_started,
                    )
                )
                ledger.settle(None)
                return StopReason.TERMINAL_FAILURE, outcome.message

            logger.info(
                "Attempt %d: applying %s (%d pending, %d/%d attempts used)",
                attempt_number,
                item.label or "<unnamed>",
                observed.pending_count,
                ledger.attempts_used,
                config.max_attempts,
            )
            outcome = self._apply(executor, adapter, item, classifier, config)

            if outcome.kind is OutcomeKind.RATE_LIMITED:
                ledger.consecutive_rate_limits += 1
                if ledger.consecutive_rate_limits > config.max_consecutive_rate_limits:
                    outcome = ApplyOutcome(
                        kind=OutcomeKind.TERMINAL_FAILURE,
                        message=(
                            f"rate limited {ledger.consecutive_rate_limits} consecutive times; "
                            f"last signal: {outcome.message}"
                        ),
                    )
            else:
                ledger.consecutive_rate_limits = 0

            if outcome.kind is OutcomeKind.TERMINAL_FAILURE:
                ledger.open(
                    AttemptRecord(
                        attempt_number=attempt_number,
                        item_label=item.label,
                        pending_before=observed.pending_count,
                        outcome=outcome,
                        timestamp=attempt_started,
                    )
                )
                ledger.settle(None)
                return StopReason.TERMINAL_FAILURE, outcome.message

            if outcome.kind is OutcomeKind.SUCCESS:
                ledger.total_applied += 1
                ledger.attempts_used += 1
            elif outcome.kind in RETRYABLE:
                ledger.attempts_used += 1

            wait_ms = backoff.compute_wait(outcome.kind, ledger.attempts_used)
            ledger.open(
                AttemptRecord(
                    attempt_number=attempt_number,
                    item_label=item.label,
                    pending_before=observed.pending_count,
                    outcome=outcome,
                    waited_ms=wait_ms,
                    timestamp=attempt_started,
                )
            )
            self._pause(wait_ms, cancel)

    def _apply(
        self,
        executor: ThreadPoolExecutor,
        adapter: TargetAdapter,
        item: PendingItem,
        classifier: OutcomeClassifier,
        config: ConvergenceConfig,
    ) -> ApplyOutcome:
        try:
            signal = self._call(
                executor, lambda: adapter.apply_next(item), config, AdapterApplyFailed, "apply"
            )
        except AdapterApplyFailed as exc:
            return ApplyOutcome(kind=OutcomeKind.INDETERMINATE, message=f"apply failed: {exc}")
        return classifier.classify(signal)

    def _call(
        self,
        executor: ThreadPoolExecutor,
        fn: Callable[[], T],
        config: ConvergenceConfig,
        error_cls: type[AdapterError],
        what: str,
    ) -> T:
        future = executor.submit(fn)
        try:
            return future.result(timeout=config.per_attempt_timeout)
        except FutureTimeout as exc:
            future.cancel()
            raise error_cls(f"{what} timed out after {config.per_attempt_timeout}s") from exc
        except error_cls:
            raise
        except Exception as exc:
            raise error_cls(f"{what} raised {type(exc).__name__}: {exc}") from exc

    def _pause(self, wait_ms: int, cancel: CancelSignal | None) -> None:
        if wait_ms <= 0:
            return
        seconds = wait_ms / 1000
        if self._sleep is not None:
            self._sleep(seconds)
            return
        waiter: Any = getattr(cancel, "wait", None)
        if callable(waiter):
            waiter(seconds)
        else:
            time.sleep(seconds)


def run(
    adapter: TargetAdapter,
    classifier: OutcomeClassifier | None = None,
    backoff: BackoffPolicy | None = None,
    recorder: AuditRecorder | None = None,
    config: ConvergenceConfig | None = None,
    cancel: CancelSignal | None = None,
) -> ConvergenceResult:
    """Run one convergence pass with a default controller."""
    return ConvergenceController().run(adapter, classifier, backoff, recorder, config, cancel)
