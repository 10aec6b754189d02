import pytest

from pendingzero.classifier import OutcomeClassifier, normalize_signal
from pendingzero.state import OutcomeKind, RawSignal


@pytest.mark.parametrize(
    ("signal", "expected"),
    [
        ("✅ Migration applied successfully", OutcomeKind.SUCCESS),
        ("🔧 Healed 2 objects", OutcomeKind.SUCCESS),
        ("Edge Function returned a non-2xx status code", OutcomeKind.TRANSIENT_FAILURE),
        ("ERROR: function exec_sql(text) does not exist", OutcomeKind.TERMINAL_FAILURE),
        ("permission denied for schema public", OutcomeKind.TERMINAL_FAILURE),
        ("Too many attempts, please wait", OutcomeKind.RATE_LIMITED),
        ("Waiting for page to settle", OutcomeKind.INDETERMINATE),
        ("", OutcomeKind.INDETERMINATE),
        (None, OutcomeKind.INDETERMINATE),
    ],
)
def test_text_signals(signal, expected) -> None:  # noqa: ANN001
    assert OutcomeClassifier().classify(signal).kind is expected


def test_rate_limit_beats_error_text() -> None:
    outcome = OutcomeClassifier().classify("Error: rate limit reached, migration failed")
    assert outcome.kind is OutcomeKind.RATE_LIMITED


def test_failure_beats_success_text() -> None:
    outcome = OutcomeClassifier().classify("Applied 1 migration, 1 failed")
    assert outcome.kind is OutcomeKind.TRANSIENT_FAILURE


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (200, OutcomeKind.SUCCESS),
        (429, OutcomeKind.RATE_LIMITED),
        (403, OutcomeKind.TERMINAL_FAILURE),
        (404, OutcomeKind.TERMINAL_FAILURE),
        (502, OutcomeKind.TRANSIENT_FAILURE),
        (408, OutcomeKind.TRANSIENT_FAILURE),
        (302, OutcomeKind.INDETERMINATE),
    ],
)
def test_status_codes(status, expected) -> None:  # noqa: ANN001
    assert OutcomeClassifier().classify(status).kind is expected


def test_status_and_text_vote_together() -> None:
    signal = RawSignal(status_code=200, text='{"error": "function exec_sql does not exist"}')
    outcome = OutcomeClassifier().classify(signal)
    assert outcome.kind is OutcomeKind.TERMINAL_FAILURE
    assert outcome.message.startswith("HTTP 200:")


def test_mapping_signal() -> None:
    signal = {"status": 500, "error": "upstream timeout"}
    assert normalize_signal(signal) == RawSignal(status_code=500, text="upstream timeout")
    assert OutcomeClassifier().classify(signal).kind is OutcomeKind.TRANSIENT_FAILURE


def test_custom_patterns_override_defaults() -> None:
    classifier = OutcomeClassifier(patterns={OutcomeKind.SUCCESS: (r"\bdone\b",)})
    assert classifier.classify("done").kind is OutcomeKind.SUCCESS
    assert classifier.classify("applied").kind is OutcomeKind.INDETERMINATE


def test_message_is_truncated() -> None:
    outcome = OutcomeClassifier().classify("failed " + "x" * 2000)
    assert outcome.message.endswith("...[truncated]")
    assert len(outcome.message) < 600
