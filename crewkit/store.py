"""Structured log stores: an in-memory store and a durable SQLite store."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import aiosqlite

logger = logging.getLogger(__name__)

LOG_LEVELS = ("debug", "info", "warning", "error")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LogRecord:
    """One structured log entry with correlation ids, timing and cost."""

    message: str
    level: str = "info"
    agent_id: Optional[str] = None
    step_id: Optional[str] = None
    capability_name: Optional[str] = None
    duration_ms: Optional[float] = None
    usage: Optional[Dict[str, int]] = None
    cost: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"log_{uuid.uuid4().hex[:12]}")
    timestamp: str = field(default_factory=utc_now_iso)


@dataclass
class LogFilter:
    """Query filter; unset fields match everything."""

    level: Optional[str] = None
    agent_id: Optional[str] = None
    step_id: Optional[str] = None
    capability_name: Optional[str] = None
    since: Optional[str] = None
    until: Optional[str] = None
    limit: int = 100

    def matches(self, record: LogRecord) -> bool:
        if self.level and record.level != self.level:
            return False
        if self.agent_id and record.agent_id != self.agent_id:
            return False
        if self.step_id and record.step_id != self.step_id:
            return False
        if self.capability_name and record.capability_name != self.capability_name:
            return False
        if self.since and record.timestamp < self.since:
            return False
        if self.until and record.timestamp > self.until:
            return False
        return True


class LogStore(Protocol):
    async def write(self, record: LogRecord) -> None: ...

    async def query(self, log_filter: Optional[LogFilter] = None) -> List[LogRecord]: ...


class InMemoryLogStore:
    """Keeps records in a list; newest first on query."""

    def __init__(self) -> None:
        self.records: List[LogRecord] = []

    async def write(self, record: LogRecord) -> None:
        self.records.append(record)

    async def query(self, log_filter: Optional[LogFilter] = None) -> List[LogRecord]:
        log_filter = log_filter or LogFilter()
        matched = [r for r in reversed(self.records) if log_filter.matches(r)]
        return matched[: log_filter.limit]


_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS logs (
    id TEXT PRIMARY KEY,
    timestamp TEXT NOT NULL,
    level TEXT NOT NULL,
    message TEXT NOT NULL,
    agent_id TEXT,
    step_id TEXT,
    capability_name TEXT,
    duration_ms REAL,
    usage_json TEXT,
    cost REAL,
    metadata_json TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_logs_agent ON logs(agent_id);
CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON logs(timestamp);
"""


def _row_to_record(row: aiosqlite.Row) -> LogRecord:
    return LogRecord(
        id=row["id"],
        timestamp=row["timestamp"],
        level=row["level"],
        message=row["message"],
        agent_id=row["agent_id"],
        step_id=row["step_id"],
        capability_name=row["capability_name"],
        duration_ms=row["duration_ms"],
        usage=json.loads(row["usage_json"]) if row["usage_json"] else None,
        cost=row["cost"],
        metadata=json.loads(row["metadata_json"]) if row["metadata_json"] else {},
    )


class SqliteLogStore:
    """Durable log store backed by aiosqlite.

    Call ``start()`` before use and ``stop()`` when done.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db: Optional[aiosqlite.Connection] = None

    async def start(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript(_SCHEMA_SQL)
        await self._db.commit()

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SqliteLogStore is not started")
        return self._db

    async def write(self, record: LogRecord) -> None:
        db = self._conn()
        await db.execute(
            "INSERT INTO logs (id, timestamp, level, message, agent_id, step_id, capability_name,"
            " duration_ms, usage_json, cost, metadata_json) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.id,
                record.timestamp,
                record.level,
                record.message,
                record.agent_id,
                record.step_id,
                record.capability_name,
                record.duration_ms,
                json.dumps(record.usage) if record.usage is not None else None,
                record.cost,
                json.dumps(record.metadata, default=str),
            ),
        )
        await db.commit()

    async def query(self, log_filter: Optional[LogFilter] = None) -> List[LogRecord]:
        log_filter = log_filter or LogFilter()
        clauses: List[str] = []
        params: List[Any] = []
        for column, value in (
            ("level", log_filter.level),
            ("agent_id", log_filter.agent_id),
            ("step_id", log_filter.step_id),
            ("capability_name", log_filter.capability_name),
        ):
            if value:
                clauses.append(f"{column} = ?")
                params.append(value)
        if log_filter.since:
            clauses.append("timestamp >= ?")
            params.append(log_filter.since)
        if log_filter.until:
            clauses.append("timestamp <= ?")
            params.append(log_filter.until)

        sql = "SELECT * FROM logs"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY timestamp DESC, rowid DESC LIMIT ?"
        params.append(log_filter.limit)

        async with self._conn().execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]
