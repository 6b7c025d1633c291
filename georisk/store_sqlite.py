"""SQLite-backed analysis store: one record per headline identity.

Uses WAL mode + NORMAL synchronous for write throughput while retaining
crash safety.  The assessment payload is an opaque JSON column; the risk
score lives in its own column so ordering and filtering never decode it.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from typing import Optional

from .common_types import AnalysisRecord
from .errors import PersistenceError


SCHEMA = """
CREATE TABLE IF NOT EXISTS analysis_cache (
  id TEXT PRIMARY KEY,
  headline TEXT NOT NULL,
  analysis TEXT NOT NULL,
  risk_score REAL NOT NULL,
  created_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_analysis_created_at ON analysis_cache(created_at);
CREATE INDEX IF NOT EXISTS idx_analysis_risk_score ON analysis_cache(risk_score);
"""

_COLUMNS = "id, headline, analysis, risk_score, created_at"


class AnalysisStore:
    """Durable keyed store of :class:`AnalysisRecord` backed by SQLite.

    One connection is shared by all threads; ``_lock`` only keeps
    statements on that connection from interleaving.  Writers for the
    same identity are not serialised beyond that: the last ``put`` wins.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()
        try:
            self.conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
            self.conn.execute("PRAGMA journal_mode=WAL;")
            self.conn.execute("PRAGMA synchronous=NORMAL;")
            self.conn.execute("PRAGMA busy_timeout=5000;")
            self.conn.executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise PersistenceError(f"cannot open analysis store at {path}: {exc}") from exc

    # ── Reads ───────────────────────────────────────────────────

    def get(self, identity: str) -> Optional[AnalysisRecord]:
        """Exact-key lookup; ``None`` on miss."""
        try:
            with self._lock:
                row = self.conn.execute(
                    f"SELECT {_COLUMNS} FROM analysis_cache WHERE id=?", (identity,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"read failed: {exc}", identity=identity) from exc
        return _row_to_record(row) if row else None

    def list_recent(self, limit: int) -> list[AnalysisRecord]:
        """Up to *limit* records, newest first, ties by identity ascending."""
        if limit <= 0:
            return []
        try:
            with self._lock:
                rows = self.conn.execute(
                    f"SELECT {_COLUMNS} FROM analysis_cache "
                    "ORDER BY created_at DESC, id ASC LIMIT ?",
                    (limit,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"list failed: {exc}") from exc
        return [_row_to_record(r) for r in rows]

    def count(self) -> int:
        try:
            with self._lock:
                row = self.conn.execute("SELECT COUNT(*) FROM analysis_cache").fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"count failed: {exc}") from exc
        return int(row[0])

    # ── Writes ──────────────────────────────────────────────────

    def put(self, record: AnalysisRecord) -> None:
        """Upsert *record* by identity.

        An existing row keeps its original ``created_at``; headline,
        payload and score are replaced in a single statement, so a
        failed write leaves the previous row untouched.
        """
        try:
            blob = json.dumps(record.analysis, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(
                f"analysis payload is not serialisable: {exc}", identity=record.identity,
            ) from exc
        try:
            with self._lock:
                self.conn.execute(
                    f"INSERT INTO analysis_cache({_COLUMNS}) VALUES(?,?,?,?,?) "
                    "ON CONFLICT(id) DO UPDATE SET headline=excluded.headline, "
                    "analysis=excluded.analysis, risk_score=excluded.risk_score",
                    (record.identity, record.headline, blob,
                     float(record.risk_score), float(record.created_at)),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"write failed: {exc}", identity=record.identity) from exc

    # ── Maintenance ─────────────────────────────────────────────

    def close(self) -> None:
        with self._lock:
            self.conn.close()


def _row_to_record(row: tuple) -> AnalysisRecord:
    identity, headline, blob, risk_score, created_at = row
    try:
        analysis = json.loads(blob)
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"corrupt analysis blob: {exc}", identity=identity) from exc
    if not isinstance(analysis, dict):
        raise PersistenceError("corrupt analysis blob: not an object", identity=identity)
    return AnalysisRecord(
        identity=identity,
        headline=headline,
        analysis=analysis,
        risk_score=risk_score,
        created_at=created_at,
    )
