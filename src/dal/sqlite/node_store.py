import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Optional

import aiosqlite

from common.errors import ConstraintViolation, HasChildren, NotFound
from common.interfaces.node_store import NodeStoreSession
from common.models.node import Node
from dal.error_classification import raise_store_error
from dal.sqlite.config import SqliteNodeStoreConfig
from dal.sqlite.param_translation import translate_postgres_params_to_sqlite
from dal.tracing import trace_operation
from dal.validation import check_label, check_placement

logger = logging.getLogger(__name__)

# SQLite checks unique indexes row by row and has no deferrable unique
# constraints, so shifts are never applied in place (see shift_siblings).
SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS forest_nodes (
        node_id   INTEGER PRIMARY KEY AUTOINCREMENT,
        parent_id INTEGER REFERENCES forest_nodes (node_id),
        position  INTEGER NOT NULL,
        label     TEXT NOT NULL,
        CHECK (parent_id IS NULL OR parent_id <> node_id)
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS forest_nodes_sibling_position
        ON forest_nodes (parent_id, position) WHERE parent_id IS NOT NULL
    """,
    "CREATE INDEX IF NOT EXISTS forest_nodes_parent ON forest_nodes (parent_id)",
)

_NODE_COLUMNS = "node_id, parent_id, position, label"

# Stays below SQLITE_MAX_VARIABLE_NUMBER on older builds
_MAX_IN_PARAMS = 500


class SqliteNodeStore:
    """Embedded SQLite node store.

    All units share one connection and run one at a time; writer units open
    with BEGIN IMMEDIATE so the database write lock is held for the whole unit.
    Readers therefore wait behind any running writer.
    """

    provider = "sqlite"

    def __init__(self, config: Optional[SqliteNodeStoreConfig] = None) -> None:
        """Initialize with optional config (defaults to environment)."""
        self._config = config or SqliteNodeStoreConfig.from_env()
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            conn = await aiosqlite.connect(
                self._config.path,
                isolation_level=None,
                timeout=self._config.busy_timeout_seconds,
            )
            conn.row_factory = sqlite3.Row
            await conn.execute("PRAGMA foreign_keys = ON")
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
            self._conn = conn
            logger.info("SQLite node store opened at %s", self._config.path)
        return self._conn

    @asynccontextmanager
    async def unit_of_work(self, read_only: bool = False):
        """Yield a session inside one SQLite transaction."""
        async with self._lock:
            conn = await self._connection()
            wrapper = _SqliteConnection(conn)
            await wrapper.execute("begin", "BEGIN" if read_only else "BEGIN IMMEDIATE")
            try:
                yield _SqliteSession(wrapper, read_only=read_only)
            except BaseException:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                raise
            try:
                await wrapper.execute("commit", "COMMIT")
            except BaseException:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                raise

    async def close(self) -> None:
        """Close the shared connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite node store closed")


class _SqliteConnection:
    """Adapter providing asyncpg-like helpers over aiosqlite."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def _run(self, operation: str, sql: str, params: tuple, consume):
        sql, bound_params = translate_postgres_params_to_sqlite(sql, params)

        async def _statement():
            try:
                cursor = await self._conn.execute(sql, bound_params)
                return await consume(cursor)
            except sqlite3.Error as exc:
                raise_store_error("sqlite", operation, exc)

        return await trace_operation(
            f"dal.node_store.{operation}", "sqlite", _statement(), sql=sql
        )

    async def execute(self, operation: str, sql: str, *params: Any) -> int:
        """Run a statement and return the number of rows it changed."""

        async def _rowcount(cursor) -> int:
            return cursor.rowcount

        return await self._run(operation, sql, params, _rowcount)

    async def insert(self, operation: str, sql: str, *params: Any) -> int:
        """Run an INSERT and return the new rowid."""

        async def _lastrowid(cursor) -> int:
            return cursor.lastrowid

        return await self._run(operation, sql, params, _lastrowid)

    async def fetch(self, operation: str, sql: str, *params: Any) -> List[Dict[str, Any]]:
        """Fetch rows as dicts."""

        async def _rows(cursor) -> List[Dict[str, Any]]:
            return [dict(row) for row in await cursor.fetchall()]

        return await self._run(operation, sql, params, _rows)

    async def fetchrow(self, operation: str, sql: str, *params: Any) -> Optional[Dict[str, Any]]:
        """Fetch a single row as a dict or None."""
        rows = await self.fetch(operation, sql, *params)
        return rows[0] if rows else None


def _to_node(row: Dict[str, Any]) -> Node:
    return Node(
        id=row["node_id"],
        parent_id=row["parent_id"],
        position=row["position"],
        label=row["label"],
    )


class _SqliteSession(NodeStoreSession):
    def __init__(self, conn: _SqliteConnection, read_only: bool = False) -> None:
        self._conn = conn
        self._read_only = read_only

    def _check_writable(self) -> None:
        if self._read_only:
            raise RuntimeError("Cannot write through a read-only unit of work.")

    async def create(
        self,
        parent_id: Optional[int],
        position: int,
        label: str,
        node_id: Optional[int] = None,
    ) -> int:
        self._check_writable()
        check_label(label)
        check_placement(node_id, parent_id, position)
        if node_id is None:
            return await self._conn.insert(
                "create",
                "INSERT INTO forest_nodes (parent_id, position, label) VALUES ($1, $2, $3)",
                parent_id,
                position,
                label,
            )

        if await self.find(node_id) is not None:
            raise ConstraintViolation(
                f"Node id {node_id} is already in use.", invariant="unique_id", node_id=node_id
            )
        await self._conn.execute(
            "create",
            "INSERT INTO forest_nodes (node_id, parent_id, position, label) "
            "VALUES ($1, $2, $3, $4)",
            node_id,
            parent_id,
            position,
            label,
        )
        return node_id

    async def find(self, node_id: int, for_update: bool = False) -> Optional[Node]:
        # BEGIN IMMEDIATE already holds the write lock; for_update needs no extra locking
        row = await self._conn.fetchrow(
            "find", f"SELECT {_NODE_COLUMNS} FROM forest_nodes WHERE node_id = $1", node_id
        )
        return _to_node(row) if row else None

    async def update(self, node_id: int, parent_id: Optional[int], position: int) -> None:
        self._check_writable()
        check_placement(node_id, parent_id, position)
        changed = await self._conn.execute(
            "update",
            "UPDATE forest_nodes SET parent_id = $2, position = $3 WHERE node_id = $1",
            node_id,
            parent_id,
            position,
        )
        if not changed:
            raise NotFound(node_id)

    async def delete(self, node_id: int) -> None:
        self._check_writable()
        child = await self._conn.fetchrow(
            "delete", "SELECT 1 AS present FROM forest_nodes WHERE parent_id = $1 LIMIT 1", node_id
        )
        if child:
            raise HasChildren(node_id)
        removed = await self._conn.execute(
            "delete", "DELETE FROM forest_nodes WHERE node_id = $1", node_id
        )
        if not removed:
            raise NotFound(node_id)

    async def shift_siblings(
        self, parent_id: Optional[int], after_position: Optional[int], delta: int
    ) -> int:
        """Shift siblings in two set-based passes through negative positions.

        The first pass parks every shifted row at ``-(new_position) - 1``, a
        range no live row occupies; the second flips them back.
        """
        self._check_writable()
        if parent_id is None:
            return 0
        after = -1 if after_position is None else after_position
        if delta < 0:
            lowest = await self._conn.fetchrow(
                "shift_siblings",
                "SELECT min(position) AS lowest FROM forest_nodes "
                "WHERE parent_id = $1 AND position > $2",
                parent_id,
                after,
            )
            if lowest and lowest["lowest"] is not None and lowest["lowest"] + delta < 0:
                raise ConstraintViolation(
                    f"Shifting children of {parent_id} by {delta} makes a position negative.",
                    invariant="position_non_negative",
                    parent_id=parent_id,
                )

        shifted = await self._conn.execute(
            "shift_siblings",
            "UPDATE forest_nodes SET position = -(position + $3) - 1 "
            "WHERE parent_id = $1 AND position > $2",
            parent_id,
            after,
            delta,
        )
        await self._conn.execute(
            "shift_siblings",
            "UPDATE forest_nodes SET position = -position - 1 "
            "WHERE parent_id = $1 AND position < 0",
            parent_id,
        )
        return shifted

    async def children_of(self, parent_ids: Iterable[Optional[int]]) -> List[Node]:
        wanted = list(dict.fromkeys(parent_ids))
        rows: List[Dict[str, Any]] = []
        if None in wanted:
            rows.extend(
                await self._conn.fetch(
                    "children_of",
                    f"SELECT {_NODE_COLUMNS} FROM forest_nodes WHERE parent_id IS NULL",
                )
            )
        ids = [parent_id for parent_id in wanted if parent_id is not None]
        for start in range(0, len(ids), _MAX_IN_PARAMS):
            chunk = ids[start : start + _MAX_IN_PARAMS]
            placeholders = ", ".join(f"${index}" for index in range(1, len(chunk) + 1))
            rows.extend(
                await self._conn.fetch(
                    "children_of",
                    f"SELECT {_NODE_COLUMNS} FROM forest_nodes "
                    f"WHERE parent_id IN ({placeholders})",
                    *chunk,
                )
            )
        return [_to_node(row) for row in rows]

    async def count(self) -> int:
        row = await self._conn.fetchrow("count", "SELECT count(*) AS total FROM forest_nodes")
        return row["total"]

    async def reseed_identity(self) -> None:
        self._check_writable()
        await self._conn.execute(
            "reseed_identity",
            "UPDATE sqlite_sequence "
            "SET seq = (SELECT max(node_id) FROM forest_nodes) "
            "WHERE name = 'forest_nodes' AND seq < (SELECT max(node_id) FROM forest_nodes)",
        )
