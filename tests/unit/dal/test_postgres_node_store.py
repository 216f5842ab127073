"""Tests for the PostgreSQL node store against a fake asyncpg connection."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import asyncpg
import pytest

from common.errors import ConstraintViolation, HasChildren, NotFound, TransientStoreError
from dal.postgres import PostgresNodeStore, PostgresNodeStoreConfig
from dal.postgres.node_store import SIBLING_POSITION_CONSTRAINT


class _FakeTransaction:
    def __init__(self, conn, isolation, readonly):
        self._conn = conn
        self.isolation = isolation
        self.readonly = readonly

    async def start(self):
        self._conn.events.append(("start", self.isolation, self.readonly))

    async def commit(self):
        self._conn.events.append(("commit",))
        if self._conn.commit_error is not None:
            raise self._conn.commit_error

    async def rollback(self):
        self._conn.events.append(("rollback",))


class _FakeConn:
    def __init__(self):
        self.events = []
        self.commit_error = None
        self.execute_result = "UPDATE 1"
        self.fetchval_result = None
        self.fetchrow_result = None
        self.fetch_result = []

    def transaction(self, isolation=None, readonly=False):
        return _FakeTransaction(self, isolation, readonly)

    async def execute(self, sql, *args):
        self.events.append(("execute", sql, args))
        return self.execute_result

    async def fetchval(self, sql, *args):
        self.events.append(("fetchval", sql, args))
        return self.fetchval_result

    async def fetchrow(self, sql, *args):
        self.events.append(("fetchrow", sql, args))
        return self.fetchrow_result

    async def fetch(self, sql, *args):
        self.events.append(("fetch", sql, args))
        return self.fetch_result


class _FakePool:
    def __init__(self, conn):
        self._conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self._conn

    async def close(self):
        self._conn.events.append(("pool_close",))


def _store(conn, **config):
    return PostgresNodeStore(PostgresNodeStoreConfig(**config), pool=_FakePool(conn))


@pytest.mark.asyncio
async def test_writer_unit_defers_sibling_constraint_and_commits():
    conn = _FakeConn()
    store = _store(conn)

    async with store.unit_of_work() as session:
        await session.shift_siblings(3, 1, 1)

    assert conn.events[0] == ("start", "serializable", False)
    assert conn.events[1] == (
        "execute",
        f"SET CONSTRAINTS {SIBLING_POSITION_CONSTRAINT} DEFERRED",
        (),
    )
    kind, sql, args = conn.events[2]
    assert "position = position + $3" in sql
    assert "WHERE parent_id = $1" in sql
    assert args == (3, 1, 1)
    assert conn.events[-1] == ("commit",)


@pytest.mark.asyncio
async def test_root_shift_issues_no_statement():
    conn = _FakeConn()
    store = _store(conn)

    async with store.unit_of_work() as session:
        assert await session.shift_siblings(None, 0, 1) == 0

    assert not any("position + $3" in str(event) for event in conn.events)


@pytest.mark.asyncio
async def test_reader_unit_is_read_only_and_skips_deferral():
    conn = _FakeConn()
    conn.fetchval_result = 14
    store = _store(conn)

    async with store.unit_of_work(read_only=True) as session:
        assert await session.count() == 14
        with pytest.raises(RuntimeError, match="read-only"):
            await session.delete(1)

    assert conn.events[0] == ("start", "repeatable_read", True)
    assert not any("SET CONSTRAINTS" in str(event) for event in conn.events)


@pytest.mark.asyncio
async def test_exception_rolls_back_instead_of_committing():
    conn = _FakeConn()
    store = _store(conn)

    with pytest.raises(RuntimeError):
        async with store.unit_of_work():
            raise RuntimeError("boom")

    assert ("rollback",) in conn.events
    assert ("commit",) not in conn.events


@pytest.mark.asyncio
async def test_deferred_unique_violation_at_commit_becomes_constraint_violation():
    conn = _FakeConn()
    conn.commit_error = asyncpg.exceptions.UniqueViolationError(
        'duplicate key value violates unique constraint "forest_nodes_sibling_position"'
    )
    store = _store(conn)

    with pytest.raises(ConstraintViolation) as exc_info:
        async with store.unit_of_work() as session:
            await session.shift_siblings(2, None, 1)

    assert exc_info.value.invariant == "sibling_position_unique"
    assert exc_info.value.context["operation"] == "commit"


@pytest.mark.asyncio
async def test_serialization_failure_becomes_transient_error():
    conn = _FakeConn()
    conn.commit_error = asyncpg.exceptions.SerializationError(
        "could not serialize access due to read/write dependencies among transactions"
    )
    store = _store(conn)

    with pytest.raises(TransientStoreError) as exc_info:
        async with store.unit_of_work() as session:
            await session.shift_siblings(1, 0, -1)

    assert exc_info.value.category == "serialization"


@pytest.mark.asyncio
async def test_find_maps_row_and_locks_for_update():
    conn = _FakeConn()
    conn.fetchrow_result = {"node_id": 4, "parent_id": 2, "position": 1, "label": "Cash"}
    store = _store(conn)

    async with store.unit_of_work() as session:
        node = await session.get(4, for_update=True)

    assert (node.id, node.parent_id, node.position, node.label) == (4, 2, 1, "Cash")
    _, sql, args = next(event for event in conn.events if event[0] == "fetchrow")
    assert sql.endswith("FOR UPDATE")
    assert args == (4,)


@pytest.mark.asyncio
async def test_missing_rows_raise_not_found():
    conn = _FakeConn()
    conn.execute_result = "UPDATE 0"
    store = _store(conn)

    async with store.unit_of_work() as session:
        with pytest.raises(NotFound):
            await session.get(9)
        with pytest.raises(NotFound):
            await session.update(9, None, 0)


@pytest.mark.asyncio
async def test_delete_refuses_nodes_with_children():
    conn = _FakeConn()
    conn.fetchval_result = True
    store = _store(conn)

    async with store.unit_of_work() as session:
        with pytest.raises(HasChildren):
            await session.delete(9)

    assert not any(
        event[0] == "execute" and "DELETE" in event[1] for event in conn.events
    )


@pytest.mark.asyncio
async def test_children_of_includes_roots_when_none_requested():
    conn = _FakeConn()
    conn.fetch_result = [{"node_id": 1, "parent_id": None, "position": 0, "label": "root"}]
    store = _store(conn)

    async with store.unit_of_work(read_only=True) as session:
        nodes = await session.children_of([None, 5, 5])

    _, sql, args = next(event for event in conn.events if event[0] == "fetch")
    assert "ANY($1::int[])" in sql
    assert args == ([5], True)
    assert nodes[0].parent_id is None


@pytest.mark.asyncio
async def test_create_rejects_negative_position_before_reaching_driver():
    conn = _FakeConn()
    store = _store(conn)

    async with store.unit_of_work() as session:
        with pytest.raises(ConstraintViolation):
            await session.create(1, -1, "bad")

    assert not any(event[0] == "fetchval" for event in conn.events)


@pytest.mark.asyncio
async def test_pool_is_created_from_config_and_schema_is_ensured():
    conn = _FakeConn()
    create_pool = AsyncMock(return_value=_FakePool(conn))
    store = PostgresNodeStore(PostgresNodeStoreConfig(host="db", db_name="trees"))

    with patch("dal.postgres.node_store.asyncpg.create_pool", new=create_pool):
        async with store.unit_of_work(read_only=True):
            pass
        await store.close()

    assert create_pool.await_args.args[0] == "postgresql://postgres:postgres@db:5432/trees"
    assert create_pool.await_args.kwargs["server_settings"] == {
        "application_name": "ordered_forest"
    }
    assert "CREATE TABLE IF NOT EXISTS forest_nodes" in conn.events[0][1]
    assert conn.events[-1] == ("pool_close",)


def test_config_rejects_unknown_isolation():
    with pytest.raises(ValueError, match="isolation"):
        PostgresNodeStoreConfig(isolation="chaos")


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("FOREST_DB_HOST", "pg.internal")
    monkeypatch.setenv("FOREST_DB_PORT", "6543")
    monkeypatch.setenv("FOREST_DB_ISOLATION", "Repeatable_Read")
    monkeypatch.setenv("FOREST_DB_POOL_MAX", "4")

    config = PostgresNodeStoreConfig.from_env()

    assert config.host == "pg.internal"
    assert config.port == 6543
    assert config.isolation == "repeatable_read"
    assert config.pool_max_size == 4
