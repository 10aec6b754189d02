from pendingzero.backoff import BackoffPolicy
from pendingzero.state import ConvergenceConfig, OutcomeKind


def test_transient_wait_grows_linearly_and_caps() -> None:
    policy = BackoffPolicy(base_delay_ms=1000, max_delay_ms=2500)
    waits = [policy.compute_wait(OutcomeKind.TRANSIENT_FAILURE, n) for n in (0, 1, 2, 3)]
    assert waits == [1000, 1000, 2000, 2500]
    assert policy.compute_wait(OutcomeKind.INDETERMINATE, 2) == 2000


def test_rate_limit_wait_is_fixed_and_distinct() -> None:
    policy = BackoffPolicy(base_delay_ms=1000, max_delay_ms=2500, rate_limit_delay_ms=60000)
    assert policy.compute_wait(OutcomeKind.RATE_LIMITED, 0) == 60000
    assert policy.compute_wait(OutcomeKind.RATE_LIMITED, 9) == 60000


def test_success_and_terminal_waits() -> None:
    policy = BackoffPolicy(success_pause_ms=250)
    assert policy.compute_wait(OutcomeKind.SUCCESS, 3) == 250
    assert policy.compute_wait(OutcomeKind.TERMINAL_FAILURE, 3) == 0


def test_from_config() -> None:
    config = ConvergenceConfig(base_delay_ms=5, max_delay_ms=7, rate_limit_delay_ms=9, success_pause_ms=1)
    assert BackoffPolicy.from_config(config) == BackoffPolicy(5, 7, 9, 1)
