from __future__ import annotations

import json
import os
import sqlite3
import threading
import time
from typing import Any, Dict, List, Optional


class AuditLog:
    """
    Optional SQLite audit log of dispatched NFT operations.

    This is OFF by default. Enable by setting `AUDIT_DB_PATH` (or `NFT_AUDIT_DB_PATH`).
    Payloads and private keys are never stored, only the routing outcome.
    """

    def __init__(self, db_path: str | None = None) -> None:
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self._explicit_path = db_path

    def enabled(self) -> bool:
        return bool(self._db_path())

    def append(
        self,
        *,
        ts_ms: int,
        request_id: str,
        operation: str,
        chain: str,
        ok: bool,
        route: str | None = None,
        error_code: str | None = None,
        summary: Dict[str, Any] | None = None,
    ) -> None:
        conn = self._get_conn()
        if conn is None:
            return
        payload = json.dumps(summary or {}, sort_keys=True, default=str)
        with self._lock:
            conn.execute(
                """
                INSERT INTO audit_events(
                    ts_ms, request_id, operation, chain, ok, route, error_code, summary_json
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    int(ts_ms),
                    str(request_id),
                    str(operation),
                    str(chain),
                    1 if ok else 0,
                    route,
                    error_code,
                    payload,
                ),
            )
            conn.commit()

    def recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        conn = self._get_conn()
        if conn is None:
            return []
        with self._lock:
            rows = conn.execute(
                """
                SELECT ts_ms, request_id, operation, chain, ok, route, error_code, summary_json
                FROM audit_events ORDER BY id DESC LIMIT ?
                """,
                (int(limit),),
            ).fetchall()
        return [
            {
                "ts_ms": r[0],
                "request_id": r[1],
                "operation": r[2],
                "chain": r[3],
                "ok": bool(r[4]),
                "route": r[5],
                "error_code": r[6],
                "summary": json.loads(r[7]),
            }
            for r in rows
        ]

    def _db_path(self) -> str:
        if self._explicit_path:
            return self._explicit_path
        return (os.getenv("NFT_AUDIT_DB_PATH") or os.getenv("AUDIT_DB_PATH") or "").strip()

    def _get_conn(self) -> Optional[sqlite3.Connection]:
        path = self._db_path()
        if not path:
            return None
        with self._lock:
            if self._conn is None:
                self._conn = sqlite3.connect(path, check_same_thread=False)
                if path != ":memory:":
                    self._conn.execute("PRAGMA journal_mode=WAL;")
                self._conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS audit_events(
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        ts_ms INTEGER NOT NULL,
                        request_id TEXT NOT NULL,
                        operation TEXT NOT NULL,
                        chain TEXT NOT NULL,
                        ok INTEGER NOT NULL,
                        route TEXT,
                        error_code TEXT,
                        summary_json TEXT NOT NULL
                    )
                    """
                )
                self._conn.commit()
            return self._conn


def now_ms() -> int:
    return int(time.time() * 1000)
