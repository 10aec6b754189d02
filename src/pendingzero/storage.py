"""Audit storage backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from hashlib import sha256
from pathlib import Path
import json
import sqlite3
from typing import Any


class AuditStore(ABC):
    @abstractmethod
    def append_event(self, event: dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def load_events(self, run_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError


class SqliteAuditStore(AuditStore):
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._init_db()

    def _init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS convergence_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT,
                    event_type TEXT,
                    timestamp TEXT,
                    payload_json TEXT,
                    payload_hash TEXT,
                    prev_hash TEXT,
                    event_hash TEXT
                )
                """
            )
            conn.commit()

    def append_event(self, event: dict[str, Any]) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO convergence_events (
                    run_id, event_type, timestamp,
                    payload_json, payload_hash, prev_hash, event_hash
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.get("run_id"),
                    event.get("event_type"),
                    event.get("timestamp"),
                    json.dumps(event.get("payload"), ensure_ascii=False),
                    event.get("payload_hash"),
                    event.get("prev_hash"),
                    event.get("event_hash"),
                ),
            )
            conn.commit()

    def load_events(self, run_id: str) -> list[dict[str, Any]]:
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT run_id, event_type, timestamp, payload_json,
                       payload_hash, prev_hash, event_hash
                FROM convergence_events WHERE run_id = ? ORDER BY id
                """,
                (run_id,),
            ).fetchall()
        return [
            {
                "run_id": row[0],
                "event_type": row[1],
                "timestamp": row[2],
                "payload": json.loads(row[3]),
                "payload_hash": row[4],
                "prev_hash": row[5],
                "event_hash": row[6],
            }
            for row in rows
        ]


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def chain_hash(prev_hash: str, payload_hash: str, event_type: str, timestamp: str) -> str:
    return sha256((prev_hash + payload_hash + event_type + timestamp).encode("utf-8")).hexdigest()


def verify_chain(events: list[dict[str, Any]]) -> bool:
    """Check that each event hashes its payload and links to its predecessor."""
    prev_hash = ""
    for event in events:
        payload_hash = sha256(canonical_json(event["payload"]).encode("utf-8")).hexdigest()
        if payload_hash != event["payload_hash"] or event["prev_hash"] != prev_hash:
            return False
        expected = chain_hash(prev_hash, payload_hash, event["event_type"], event["timestamp"])
        if expected != event["event_hash"]:
            return False
        prev_hash = event["event_hash"]
    return True
