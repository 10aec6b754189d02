"""Shared construction helpers for adapters, policies, and recorders."""

from __future__ import annotations

from pathlib import Path

from pendingzero.adapters.base import TargetAdapter
from pendingzero.adapters.http import HttpMigrationAdapter
from pendingzero.adapters.simulated import SimulatedAdapter
from pendingzero.backoff import BackoffPolicy
from pendingzero.classifier import OutcomeClassifier
from pendingzero.config import Settings
from pendingzero.recorder import AuditLogRecorder, AuditRecorder, CompositeRecorder, LoggingRecorder
from pendingzero.state import ConvergenceConfig
from pendingzero.storage import SqliteAuditStore
from pendingzero.util.logging import get_logger

logger = get_logger(__name__)


def build_adapter(settings: Settings, simulate: int | None = None) -> TargetAdapter:
    if simulate is None and not settings.target_base_url:
        logger.warning("TARGET_BASE_URL is not set; using an empty simulated target")
    if simulate is not None or not settings.target_base_url:
        return SimulatedAdapter.with_count(simulate or 0)
    return HttpMigrationAdapter(
        base_url=settings.target_base_url,
        api_key=settings.target_api_key,
        user_id=settings.target_user_id,
        timeout_seconds=settings.target_timeout_seconds,
    )


def build_classifier(settings: Settings) -> OutcomeClassifier:
    return OutcomeClassifier()


def build_convergence_config(settings: Settings) -> ConvergenceConfig:
    return settings.convergence_config()


def build_backoff(settings: Settings) -> BackoffPolicy:
    return BackoffPolicy.from_config(settings.convergence_config())


def build_recorder(settings: Settings, run_id: str | None = None) -> AuditRecorder:
    workspace = Path(settings.workspace_dir).expanduser()
    store = SqliteAuditStore(workspace / "audit.sqlite") if settings.audit_sqlite else None
    return CompositeRecorder(
        [
            LoggingRecorder(),
            AuditLogRecorder(workspace, run_id=run_id, store=store),
        ]
    )
