"""Tests for the log stores."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from crewkit.store import InMemoryLogStore, LogFilter, LogRecord, SqliteLogStore


@pytest_asyncio.fixture
async def sqlite_store(tmp_path: Path):
    """Create a SqliteLogStore backed by a temp directory."""
    store = SqliteLogStore(tmp_path / "logs" / "crewkit.db")
    await store.start()
    yield store
    await store.stop()


def _records() -> list[LogRecord]:
    return [
        LogRecord(message="start", agent_id="a", timestamp="2026-01-01T00:00:00+00:00"),
        LogRecord(
            message="tool",
            agent_id="a",
            capability_name="add",
            duration_ms=1.5,
            usage={"total_tokens": 3},
            cost=0.25,
            metadata={"args": {"a": 1}},
            timestamp="2026-01-01T00:00:01+00:00",
        ),
        LogRecord(message="boom", level="error", agent_id="b", timestamp="2026-01-01T00:00:02+00:00"),
    ]


@pytest.mark.asyncio
async def test_sqlite_round_trip_newest_first(sqlite_store: SqliteLogStore):
    for record in _records():
        await sqlite_store.write(record)

    records = await sqlite_store.query()

    assert [r.message for r in records] == ["boom", "tool", "start"]
    tool = records[1]
    assert tool.capability_name == "add"
    assert tool.usage == {"total_tokens": 3}
    assert tool.metadata == {"args": {"a": 1}}
    assert tool.cost == 0.25


@pytest.mark.asyncio
async def test_sqlite_filters(sqlite_store: SqliteLogStore):
    for record in _records():
        await sqlite_store.write(record)

    assert [r.message for r in await sqlite_store.query(LogFilter(agent_id="a"))] == ["tool", "start"]
    assert [r.message for r in await sqlite_store.query(LogFilter(level="error"))] == ["boom"]
    assert [r.message for r in await sqlite_store.query(LogFilter(capability_name="add"))] == ["tool"]
    since = await sqlite_store.query(LogFilter(since="2026-01-01T00:00:01+00:00"))
    assert [r.message for r in since] == ["boom", "tool"]
    assert len(await sqlite_store.query(LogFilter(limit=1))) == 1


@pytest.mark.asyncio
async def test_sqlite_persists_across_restarts(tmp_path: Path):
    db_path = tmp_path / "shared.db"
    first = SqliteLogStore(db_path)
    await first.start()
    await first.write(LogRecord(message="kept"))
    await first.stop()

    second = SqliteLogStore(db_path)
    await second.start()
    try:
        assert [r.message for r in await second.query()] == ["kept"]
    finally:
        await second.stop()


@pytest.mark.asyncio
async def test_sqlite_requires_start(tmp_path: Path):
    store = SqliteLogStore(tmp_path / "x.db")

    with pytest.raises(RuntimeError, match="not started"):
        await store.write(LogRecord(message="x"))


@pytest.mark.asyncio
async def test_in_memory_store_matches_sqlite_semantics():
    store = InMemoryLogStore()
    for record in _records():
        await store.write(record)

    assert [r.message for r in await store.query()] == ["boom", "tool", "start"]
    assert [r.message for r in await store.query(LogFilter(agent_id="b"))] == ["boom"]
    assert [r.message for r in await store.query(LogFilter(until="2026-01-01T00:00:00+00:00"))] == ["start"]
