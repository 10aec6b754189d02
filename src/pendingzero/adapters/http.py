"""HTTP target for migration-runner edge functions."""

from __future__ import annotations

import json
from typing import Any

import httpx

from pendingzero.adapters.base import TargetAdapter
from pendingzero.failures import AdapterApplyFailed, AdapterObserveFailed, NoSelectableItem
from pendingzero.state import ObservedState, PendingItem, RawSignal
from pendingzero.util.logging import get_logger, redact

logger = get_logger(__name__)

MESSAGE_KEYS = ("message", "msg", "details", "hint")


class HttpMigrationAdapter(TargetAdapter):
    """Talks to ``check-pending-migrations`` and ``apply-migration`` endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        user_id: str = "pendingzero",
        timeout_seconds: int = 30,
        check_path: str = "/functions/v1/check-pending-migrations",
        apply_path: str = "/functions/v1/apply-migration",
        max_response_chars: int = 2000,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        normalized = base_url.strip()
        if not normalized.startswith(("http://", "https://")):
            normalized = f"https://{normalized}"
        self.base_url = normalized.rstrip("/")
        self.api_key = api_key
        self.user_id = user_id
        self.timeout_seconds = timeout_seconds
        self.check_path = _with_slash(check_path)
        self.apply_path = _with_slash(apply_path)
        self.max_response_chars = max_response_chars
        self.transport = transport
        self._pending: list[dict[str, Any]] = []

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout_seconds),
            transport=self.transport,
        )

    def observe(self) -> ObservedState:
        try:
            with self._client() as client:
                response = client.get(self.check_path, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise AdapterObserveFailed(
                f"check failed with HTTP {exc.response.status_code}: "
                f"{self._scrub(exc.response.text)}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AdapterObserveFailed(f"check request failed: {self._scrub(str(exc))}") from exc
        except json.JSONDecodeError as exc:
            raise AdapterObserveFailed("check returned malformed JSON") from exc
        if not isinstance(data, dict):
            raise AdapterObserveFailed("check returned an unexpected payload")
        migrations = data.get("pendingMigrations") or []
        self._pending = [entry for entry in migrations if isinstance(entry, dict)]
        pending_count = data.get("pendingCount", len(self._pending))
        applied_count = data.get("appliedCount", 0)
        try:
            return ObservedState(
                pending_count=int(pending_count),
                applied_count=int(applied_count),
                pending_items=[str(entry.get("name", "")) for entry in self._pending],
            )
        except (TypeError, ValueError) as exc:
            raise AdapterObserveFailed(f"check returned invalid counts: {exc}") from exc

    def select_next(self) -> PendingItem:
        if not self._pending:
            raise NoSelectableItem("target reported pending migrations but listed none")
        entry = self._pending[0]
        return PendingItem(label=str(entry.get("name", "")), payload=dict(entry))

    def apply_next(self, item: PendingItem) -> RawSignal | dict[str, Any]:
        body = {
            "migrationName": item.payload.get("name", item.label),
            "migrationContent": item.payload.get("content", ""),
            "userId": self.user_id,
        }
        logger.debug("Applying migration %s", item.label or "<unnamed>")
        try:
            with self._client() as client:
                response = client.post(self.apply_path, headers=self._headers(), json=body)
        except httpx.HTTPError as exc:
            raise AdapterApplyFailed(f"apply request failed: {self._scrub(str(exc))}") from exc
        return self._apply_signal(response)

    def _apply_signal(self, response: httpx.Response) -> RawSignal | dict[str, Any]:
        try:
            data = response.json()
        except json.JSONDecodeError:
            return RawSignal(status_code=response.status_code, text=self._scrub(response.text))
        if not isinstance(data, dict):
            return RawSignal(status_code=response.status_code, text=self._scrub(response.text))
        parts = [
            str(data[key])
            for key in MESSAGE_KEYS
            if data.get(key) not in (None, "", [], {})
        ]
        error = data.get("error")
        if data.get("success") is False and error in (None, ""):
            error = "apply failed without an error message"
        return {
            "status_code": response.status_code,
            "message": self._scrub(" ".join(parts)),
            "error": self._scrub(str(error)) if error not in (None, "") else None,
        }

    def _scrub(self, text: str) -> str:
        secrets = [self.api_key] if self.api_key else None
        return redact(text[: self.max_response_chars], secrets)


def _with_slash(path: str) -> str:
    return path if path.startswith("/") else f"/{path}"
