"""Event log storage for routine sessions.

``InMemoryEventLogger`` keeps events in a list (tests, demos).
``SQLiteEventLogger`` appends them to an SQLite database with one ``session``
row per run and one ``event`` row per logged runner event. SQLite calls run
in a worker thread so the event loop never blocks on disk.

Tests: tests/test_persistence.py
"""
from __future__ import annotations

import asyncio
import json
import os
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from coachcoo.logger import get_logger
from engine.services.adapters import LogEvent

logger = get_logger(__name__)


def _db_path() -> Path:
    """Return the default database path, respecting COACHCOO_DATA_DIR."""
    return Path(os.getenv("COACHCOO_DATA_DIR", "data")) / "coachcoo.db"


@dataclass
class EventRecord:
    id: str
    session_id: str
    routine_id: str
    ts: int
    step_id: Optional[str]
    type: str
    value: Dict[str, Any]


@dataclass
class SessionRecord:
    id: str
    child_id: Optional[str]
    routine_id: str
    started_at: int
    ended_at: Optional[int] = None
    engagement: Optional[float] = None


class InMemoryEventLogger:
    def __init__(self) -> None:
        self.events: List[LogEvent] = []

    async def log_event(self, event: LogEvent) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        """Return the logged event types in order."""
        return [e.type.value for e in self.events]


class SQLiteEventLogger:
    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = Path(db_path) if db_path else _db_path()
        self._ensure_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _ensure_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS session (id TEXT PRIMARY KEY, child_id TEXT, routine_id TEXT NOT NULL, "
                "started_at INTEGER NOT NULL, ended_at INTEGER, engagement REAL)"
            )
            conn.execute(
                "CREATE TABLE IF NOT EXISTS event (id TEXT PRIMARY KEY, session_id TEXT NOT NULL, routine_id TEXT NOT NULL, "
                "ts INTEGER NOT NULL, step_id TEXT, type TEXT NOT NULL, value_json TEXT)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_event_session_ts ON event(session_id, ts)")
        conn.close()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    def _insert_session(self, record: SessionRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO session (id, child_id, routine_id, started_at) VALUES (?,?,?,?)",
                (record.id, record.child_id, record.routine_id, record.started_at),
            )
        conn.close()

    async def start_session(
        self, session_id: str, routine_id: str, child_id: Optional[str] = None
    ) -> SessionRecord:
        record = SessionRecord(
            id=session_id,
            child_id=child_id,
            routine_id=routine_id,
            started_at=int(time.time() * 1000),
        )
        await asyncio.to_thread(self._insert_session, record)
        logger.info("Session %s started for routine %s", session_id, routine_id)
        return record

    def _update_session(self, session_id: str, ended_at: int, engagement: float) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE session SET ended_at=?, engagement=? WHERE id=?",
                (ended_at, engagement, session_id),
            )
        conn.close()

    async def end_session(self, session_id: str, engagement: float) -> None:
        await asyncio.to_thread(
            self._update_session, session_id, int(time.time() * 1000), engagement
        )
        logger.info("Session %s ended with engagement %.2f", session_id, engagement)

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, child_id, routine_id, started_at, ended_at, engagement FROM session WHERE id=?",
                (session_id,),
            ).fetchone()
        conn.close()
        return SessionRecord(*row) if row else None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def _insert_event(self, event: LogEvent) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO event (id, session_id, routine_id, ts, step_id, type, value_json) VALUES (?,?,?,?,?,?,?)",
                (
                    event.id,
                    event.session_id,
                    event.routine_id,
                    event.timestamp,
                    event.step_id,
                    event.type.value,
                    json.dumps(event.value, default=str),
                ),
            )
        conn.close()

    async def log_event(self, event: LogEvent) -> None:
        await asyncio.to_thread(self._insert_event, event)

    def list_events(self, session_id: Optional[str] = None) -> List[EventRecord]:
        """Return stored events in timestamp order."""
        sql = "SELECT id, session_id, routine_id, ts, step_id, type, value_json FROM event"
        params: tuple = ()
        if session_id is not None:
            sql += " WHERE session_id=?"
            params = (session_id,)
        sql += " ORDER BY ts ASC, rowid ASC"
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        conn.close()
        return [
            EventRecord(
                id=row[0],
                session_id=row[1],
                routine_id=row[2],
                ts=row[3],
                step_id=row[4],
                type=row[5],
                value=json.loads(row[6]) if row[6] else {},
            )
            for row in rows
        ]
