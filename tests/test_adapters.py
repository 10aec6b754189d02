from __future__ import annotations

import json

import httpx
import pytest

from pendingzero.adapters.http import HttpMigrationAdapter
from pendingzero.adapters.simulated import SimulatedAdapter
from pendingzero.classifier import OutcomeClassifier
from pendingzero.controller import ConvergenceController
from pendingzero.failures import AdapterApplyFailed, AdapterObserveFailed, NoSelectableItem
from pendingzero.state import ConvergenceConfig, OutcomeKind, RawSignal, StopReason

MIGRATIONS = [
    {"name": "20250814063000_create_tasks_table.sql", "description": "tasks", "content": "create table tasks();"},
    {"name": "20250813151513_create_new_user_task_trigger.sql", "description": "trigger", "content": "create trigger t;"},
]


class FakeMigrationRunner:
    def __init__(self, apply_statuses: list[int] | None = None) -> None:
        self.pending = [dict(item) for item in MIGRATIONS]
        self.applied = 3
        self.apply_statuses = list(apply_statuses or [])
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/functions/v1/check-pending-migrations":
            return httpx.Response(
                200,
                json={
                    "pendingCount": len(self.pending),
                    "appliedCount": self.applied,
                    "pendingMigrations": self.pending,
                },
            )
        body = json.loads(request.content.decode())
        status = self.apply_statuses.pop(0) if self.apply_statuses else 200
        if status != 200:
            return httpx.Response(status, text="Edge Function returned a non-2xx status code")
        self.pending = [item for item in self.pending if item["name"] != body["migrationName"]]
        self.applied += 1
        return httpx.Response(200, json={"success": True, "message": "Migration applied"})


def _adapter(handler) -> HttpMigrationAdapter:  # noqa: ANN001
    return HttpMigrationAdapter(
        base_url="example.supabase.co",
        api_key="service-key",
        user_id="e2e-test-user",
        transport=httpx.MockTransport(handler),
    )


def test_http_observe_select_apply() -> None:
    runner = FakeMigrationRunner()
    adapter = _adapter(runner)
    observed = adapter.observe()
    assert observed.pending_count == 2
    assert observed.applied_count == 3
    item = adapter.select_next()
    assert item.label == MIGRATIONS[0]["name"]
    signal = adapter.apply_next(item)
    assert signal.status_code == 200
    sent = json.loads(runner.requests[-1].content.decode())
    assert sent == {
        "migrationName": MIGRATIONS[0]["name"],
        "migrationContent": "create table tasks();",
        "userId": "e2e-test-user",
    }
    assert runner.requests[-1].headers["Authorization"] == "Bearer service-key"
    assert runner.requests[-1].url == httpx.URL(
        "https://example.supabase.co/functions/v1/apply-migration"
    )


def test_http_adapter_converges_through_transient_errors() -> None:
    runner = FakeMigrationRunner(apply_statuses=[503, 200, 200])
    result = ConvergenceController(sleep=lambda seconds: None).run(
        _adapter(runner), config=ConvergenceConfig(max_attempts=5)
    )
    assert result.converged
    assert result.attempts_used == 3
    assert result.total_applied == 2


def test_http_observe_error_status() -> None:
    adapter = _adapter(lambda request: httpx.Response(401, text="Invalid JWT service-key"))
    with pytest.raises(AdapterObserveFailed) as exc:
        adapter.observe()
    assert "401" in str(exc.value)
    assert "service-key" not in str(exc.value)


def test_http_observe_malformed_json() -> None:
    adapter = _adapter(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(AdapterObserveFailed):
        adapter.observe()


def test_http_select_without_listing() -> None:
    adapter = _adapter(lambda request: httpx.Response(200, json={"pendingCount": 4}))
    assert adapter.observe().pending_count == 4
    with pytest.raises(NoSelectableItem):
        adapter.select_next()


def test_http_apply_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"pendingCount": 1, "pendingMigrations": MIGRATIONS[:1]})

    adapter = _adapter(handler)
    adapter.observe()
    with pytest.raises(AdapterApplyFailed):
        adapter.apply_next(adapter.select_next())


def test_http_apply_returns_signal_for_error_status() -> None:
    runner = FakeMigrationRunner(apply_statuses=[429])
    adapter = _adapter(runner)
    adapter.observe()
    signal = adapter.apply_next(adapter.select_next())
    assert isinstance(signal, RawSignal)
    assert signal.status_code == 429


def test_simulated_adapter_only_moves_items_on_success() -> None:
    adapter = SimulatedAdapter(pending=["a", "b"], script=["failed", "applied", RuntimeError("boom")])
    item = adapter.select_next()
    adapter.apply_next(item)
    assert adapter.observe().pending_count == 2
    adapter.apply_next(item)
    assert adapter.observe().pending_items == ["b"]
    with pytest.raises(AdapterApplyFailed):
        adapter.apply_next(adapter.select_next())


def test_simulated_empty_target() -> None:
    adapter = SimulatedAdapter.with_count(0)
    result = ConvergenceController().run(adapter)
    assert result.stop_reason is StopReason.CONVERGED


def _apply_once(payload: dict) -> object:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"pendingCount": 1, "pendingMigrations": MIGRATIONS[:1]})
        return httpx.Response(200, json=payload)

    adapter = _adapter(handler)
    adapter.observe()
    return adapter.apply_next(adapter.select_next())


def test_http_json_keys_do_not_vote() -> None:
    signal = _apply_once({"success": True, "error": None})
    assert OutcomeClassifier().classify(signal).kind is OutcomeKind.SUCCESS


def test_http_json_error_field_is_classified() -> None:
    signal = _apply_once({"success": False, "error": "function exec_sql(text) does not exist"})
    assert OutcomeClassifier().classify(signal).kind is OutcomeKind.TERMINAL_FAILURE


def test_http_success_false_without_error_is_not_success() -> None:
    signal = _apply_once({"success": False})
    assert OutcomeClassifier().classify(signal).kind is OutcomeKind.TRANSIENT_FAILURE


def test_http_success_body_counts_as_applied() -> None:
    class Runner(FakeMigrationRunner):
        def __call__(self, request: httpx.Request) -> httpx.Response:
            response = super().__call__(request)
            if request.method == "POST":
                return httpx.Response(200, json={"success": True, "error": None})
            return response

    result = ConvergenceController(sleep=lambda seconds: None).run(
        _adapter(Runner()), config=ConvergenceConfig(max_attempts=5)
    )
    assert result.converged
    assert result.total_applied == 2
    assert result.attempts_used == 2
