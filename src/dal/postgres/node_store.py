import logging
from contextlib import asynccontextmanager
from typing import Any, Iterable, List, Optional

import asyncpg

from common.errors import ConstraintViolation, HasChildren, NotFound
from common.interfaces.node_store import NodeStoreSession
from common.models.node import Node
from dal.error_classification import raise_store_error
from dal.postgres.config import PostgresNodeStoreConfig
from dal.tracing import trace_operation
from dal.validation import check_label, check_placement

logger = logging.getLogger(__name__)

SIBLING_POSITION_CONSTRAINT = "forest_nodes_sibling_position"

# NULL parents compare distinct, so root positions are unconstrained.
SCHEMA_SQL = f"""
    CREATE TABLE IF NOT EXISTS forest_nodes (
        node_id   serial PRIMARY KEY,
        parent_id int REFERENCES forest_nodes (node_id),
        position  int NOT NULL,
        label     text NOT NULL,
        CONSTRAINT forest_nodes_position_non_negative CHECK (position >= 0),
        CONSTRAINT forest_nodes_no_self_parent CHECK (parent_id <> node_id),
        CONSTRAINT {SIBLING_POSITION_CONSTRAINT}
            UNIQUE (parent_id, position)
            DEFERRABLE INITIALLY IMMEDIATE
    );

    COMMENT ON COLUMN forest_nodes.position IS
        'Position of the node among its siblings.';
"""

_NODE_COLUMNS = "node_id, parent_id, position, label"


class PostgresNodeStore:
    """PostgreSQL node store.

    Writer units run in one transaction with the sibling-position constraint
    deferred, so bulk shifts may pass through duplicate positions and the
    constraint is checked once, at COMMIT.
    """

    provider = "postgres"

    def __init__(
        self,
        config: Optional[PostgresNodeStoreConfig] = None,
        pool: Optional[Any] = None,
    ) -> None:
        """Initialize with optional config and an injected pool for testing."""
        self._config = config or PostgresNodeStoreConfig.from_env()
        self._pool = pool

    async def _get_pool(self):
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    self._config.dsn,
                    min_size=self._config.pool_min_size,
                    max_size=self._config.pool_max_size,
                    command_timeout=self._config.command_timeout_seconds,
                    server_settings={"application_name": "ordered_forest"},
                )
            except (OSError, asyncpg.PostgresError) as e:
                raise ConnectionError(f"Failed to initialize forest database pool: {e}")
            logger.info(
                "Postgres node store pool established: %s@%s/%s",
                self._config.user,
                self._config.host,
                self._config.db_name,
            )
            await self.ensure_schema()
        return self._pool

    async def ensure_schema(self) -> None:
        """Create the node table when it does not exist yet."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Forest schema ensured (forest_nodes)")

    @asynccontextmanager
    async def unit_of_work(self, read_only: bool = False):
        """Yield a session bound to one transaction on a pooled connection."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            if read_only:
                transaction = conn.transaction(isolation="repeatable_read", readonly=True)
            else:
                transaction = conn.transaction(isolation=self._config.isolation)

            try:
                await transaction.start()
                if not read_only:
                    await conn.execute(f"SET CONSTRAINTS {SIBLING_POSITION_CONSTRAINT} DEFERRED")
            except (OSError, asyncpg.PostgresError) as exc:
                raise_store_error(self.provider, "begin", exc)

            try:
                yield _PostgresSession(conn, read_only=read_only)
            except BaseException:
                await transaction.rollback()
                raise

            try:
                await transaction.commit()
            except (OSError, asyncpg.PostgresError) as exc:
                raise_store_error(self.provider, "commit", exc)

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Postgres node store pool closed")


def _to_node(row: Any) -> Node:
    return Node(
        id=row["node_id"],
        parent_id=row["parent_id"],
        position=row["position"],
        label=row["label"],
    )


class _PostgresSession(NodeStoreSession):
    def __init__(self, conn: Any, read_only: bool = False) -> None:
        self._conn = conn
        self._read_only = read_only

    async def _call(self, operation: str, method: str, sql: str, *params: Any):
        async def _statement():
            try:
                return await getattr(self._conn, method)(sql, *params)
            except (OSError, asyncpg.PostgresError) as exc:
                raise_store_error("postgres", operation, exc)

        return await trace_operation(
            f"dal.node_store.{operation}", "postgres", _statement(), sql=sql
        )

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
            return await self._call(
                "create",
                "fetchval",
                "INSERT INTO forest_nodes (parent_id, position, label) "
                "VALUES ($1, $2, $3) RETURNING node_id",
                parent_id,
                position,
                label,
            )

        if await self.find(node_id) is not None:
            raise ConstraintViolation(
                f"Node id {node_id} is already in use.", invariant="unique_id", node_id=node_id
            )
        await self._call(
            "create",
            "execute",
            "INSERT INTO forest_nodes (node_id, parent_id, position, label) "
            "VALUES ($1, $2, $3, $4)",
            node_id,
            parent_id,
            position,
            label,
        )
        return node_id

    async def find(self, node_id: int, for_update: bool = False) -> Optional[Node]:
        lock = " FOR UPDATE" if for_update and not self._read_only else ""
        row = await self._call(
            "find",
            "fetchrow",
            f"SELECT {_NODE_COLUMNS} FROM forest_nodes WHERE node_id = $1{lock}",
            node_id,
        )
        return _to_node(row) if row else None

    async def update(self, node_id: int, parent_id: Optional[int], position: int) -> None:
        self._check_writable()
        check_placement(node_id, parent_id, position)
        status = await self._call(
            "update",
            "execute",
            "UPDATE forest_nodes SET parent_id = $2, position = $3 WHERE node_id = $1",
            node_id,
            parent_id,
            position,
        )
        if _affected(status) == 0:
            raise NotFound(node_id)

    async def delete(self, node_id: int) -> None:
        self._check_writable()
        has_children = await self._call(
            "delete",
            "fetchval",
            "SELECT EXISTS (SELECT 1 FROM forest_nodes WHERE parent_id = $1)",
            node_id,
        )
        if has_children:
            raise HasChildren(node_id)
        status = await self._call(
            "delete", "execute", "DELETE FROM forest_nodes WHERE node_id = $1", node_id
        )
        if _affected(status) == 0:
            raise NotFound(node_id)

    async def shift_siblings(
        self, parent_id: Optional[int], after_position: Optional[int], delta: int
    ) -> int:
        self._check_writable()
        if parent_id is None:
            return 0
        after = -1 if after_position is None else after_position
        status = await self._call(
            "shift_siblings",
            "execute",
            "UPDATE forest_nodes SET position = position + $3 "
            "WHERE parent_id = $1 AND position > $2",
            parent_id,
            after,
            delta,
        )
        return _affected(status)

    async def children_of(self, parent_ids: Iterable[Optional[int]]) -> List[Node]:
        wanted = list(dict.fromkeys(parent_ids))
        ids = [parent_id for parent_id in wanted if parent_id is not None]
        rows = await self._call(
            "children_of",
            "fetch",
            f"SELECT {_NODE_COLUMNS} FROM forest_nodes "
            "WHERE parent_id = ANY($1::int[]) OR ($2 AND parent_id IS NULL)",
            ids,
            None in wanted,
        )
        return [_to_node(row) for row in rows]

    async def count(self) -> int:
        return await self._call("count", "fetchval", "SELECT count(*) FROM forest_nodes")

    async def reseed_identity(self) -> None:
        self._check_writable()
        await self._call(
            "reseed_identity",
            "fetchval",
            "SELECT setval(pg_get_serial_sequence('forest_nodes', 'node_id'), "
            "coalesce(max(node_id), 0) + 1, false) FROM forest_nodes",
        )


def _affected(status: Any) -> int:
    """Row count from an asyncpg command status such as 'UPDATE 3'."""
    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except ValueError:
        return 0
