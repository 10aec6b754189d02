import pytest
from pydantic import ValidationError

from pendingzero.config import Settings
from pendingzero.state import ConvergenceConfig


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MAX_ATTEMPTS", "15")
    monkeypatch.setenv("RATE_LIMIT_DELAY_MS", "120000")
    monkeypatch.setenv("INITIAL_PENDING_CHECK", "false")
    settings = Settings()
    config = settings.convergence_config()
    assert config.max_attempts == 15
    assert config.rate_limit_delay_ms == 120000
    assert config.initial_pending_check is False


def test_settings_accept_field_names() -> None:
    settings = Settings(workspace_dir="/tmp/pz", max_consecutive_rate_limits=2)
    assert settings.workspace_dir == "/tmp/pz"
    assert settings.convergence_config().max_consecutive_rate_limits == 2


def test_convergence_config_rejects_zero_attempts() -> None:
    with pytest.raises(ValidationError):
        ConvergenceConfig(max_attempts=0)
    with pytest.raises(ValidationError):
        ConvergenceConfig(per_attempt_timeout=0)
