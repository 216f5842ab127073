"""Facade running each forest operation as one retried, traced unit of work."""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from common.errors import ForestError, error_code_group
from common.interfaces import NodeStore, NodeStoreSession
from common.models.node import AnnotatedNode, Node
from common.observability import forest_metrics
from dal.factory import get_node_store
from dal.tracing import trace_operation
from forest.config import ForestSettings
from forest.mutator import Placement, PositionMutator, RecordInput
from forest.reader import SubtreeReader
from forest.retry import retry_with_backoff

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ForestService:
    """Ordered-forest operations over a node store.

    Every call opens its own unit of work, so each one is all-or-nothing.
    Units aborted with ``TransientStoreError`` are retried with backoff; every
    other error reaches the caller untouched.
    """

    def __init__(
        self,
        store: Optional[NodeStore] = None,
        settings: Optional[ForestSettings] = None,
    ) -> None:
        """Initialize with an optional store (defaults to the factory singleton)."""
        self._store = store if store is not None else get_node_store()
        self._settings = settings or ForestSettings.from_env()
        self._reader = SubtreeReader(max_depth=self._settings.max_depth)
        self._mutator = PositionMutator(self._reader, max_depth=self._settings.max_depth)

    @property
    def store(self) -> NodeStore:
        return self._store

    async def _run(
        self,
        operation: str,
        work: Callable[[NodeStoreSession], Awaitable[T]],
        *,
        read_only: bool = False,
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        context = context or {}
        provider = self._store.provider

        async def _attempt() -> T:
            async with self._store.unit_of_work(read_only=read_only) as session:
                return await work(session)

        started = time.monotonic()
        status = "ok"
        try:
            return await trace_operation(
                f"forest.{operation}",
                provider,
                retry_with_backoff(
                    _attempt,
                    operation,
                    max_attempts=self._settings.retry_max_attempts,
                    base_delay=self._settings.retry_base_delay,
                    max_delay=self._settings.retry_max_delay,
                    extra_context=context,
                ),
                attributes={f"forest.{key}": value for key, value in context.items()},
            )
        except ForestError as e:
            status = e.code.value
            logger.info(
                f"Forest operation {operation} failed: {e.message}",
                extra={
                    "operation": operation,
                    "provider": provider,
                    "error_code": e.code.value,
                    "error_group": error_code_group(e.code),
                    "error_context": e.context,
                },
            )
            raise
        except Exception:
            status = "error"
            raise
        finally:
            elapsed_ms = (time.monotonic() - started) * 1000
            attributes = {"operation": operation, "status": status, "provider": provider}
            forest_metrics.add_counter(
                "forest.operations",
                description="Forest operations by outcome",
                attributes=attributes,
            )
            forest_metrics.record_histogram(
                "forest.operation.duration_ms",
                elapsed_ms,
                description="Forest operation latency including retries",
                unit="ms",
                attributes=attributes,
            )

    # -- reads --------------------------------------------------------------

    async def get(self, node_id: int) -> Node:
        return await self._run(
            "get",
            lambda session: session.get(node_id),
            read_only=True,
            context={"node_id": node_id},
        )

    async def read_subtree(self, root_id: int) -> List[AnnotatedNode]:
        """Descendants of ``root_id`` in path order, annotated with depth, path and rank."""
        return await self._run(
            "read_subtree",
            lambda session: self._reader.read(session, root_id),
            read_only=True,
            context={"root_id": root_id},
        )

    async def read_forest(self) -> List[AnnotatedNode]:
        """Every node, with the roots at depth 1."""
        return await self._run("read_forest", self._reader.read_roots, read_only=True)

    async def count(self) -> int:
        return await self._run("count", lambda session: session.count(), read_only=True)

    # -- inserts ------------------------------------------------------------

    async def create(self, parent_id: Optional[int], position: int, label: str) -> int:
        return await self._run(
            "create",
            lambda session: self._mutator.create(session, parent_id, position, label),
            context={"parent_id": parent_id, "position": position},
        )

    async def create_many(self, placements: Sequence[Placement]) -> List[int]:
        """Create several nodes at explicit positions in one unit of work."""
        placements = list(placements)
        return await self._run(
            "create_many",
            lambda session: self._mutator.create_many(session, placements),
            context={"count": len(placements)},
        )

    async def create_root(self, label: str) -> int:
        return await self._run(
            "create_root", lambda session: self._mutator.insert_last(session, None, label)
        )

    async def insert_after(self, anchor_id: int, label: str) -> int:
        return await self._run(
            "insert_after",
            lambda session: self._mutator.insert_after(session, anchor_id, label),
            context={"anchor_id": anchor_id},
        )

    async def insert_first(self, parent_id: Optional[int], label: str) -> int:
        return await self._run(
            "insert_first",
            lambda session: self._mutator.insert_first(session, parent_id, label),
            context={"parent_id": parent_id},
        )

    async def insert_last(self, parent_id: Optional[int], label: str) -> int:
        return await self._run(
            "insert_last",
            lambda session: self._mutator.insert_last(session, parent_id, label),
            context={"parent_id": parent_id},
        )

    # -- deletes ------------------------------------------------------------

    async def delete(self, node_id: int) -> None:
        await self._run(
            "delete",
            lambda session: self._mutator.delete(session, node_id),
            context={"node_id": node_id},
        )

    async def delete_cascade(self, node_id: int) -> int:
        return await self._run(
            "delete_cascade",
            lambda session: self._mutator.delete_cascade(session, node_id),
            context={"node_id": node_id},
        )

    # -- moves --------------------------------------------------------------

    async def move_after(self, node_id: int, target_id: int) -> None:
        await self._run(
            "move_after",
            lambda session: self._mutator.move_after(session, node_id, target_id),
            context={"node_id": node_id, "target_id": target_id},
        )

    async def move_first(self, node_id: int, parent_id: Optional[int]) -> None:
        await self._run(
            "move_first",
            lambda session: self._mutator.move_first(session, node_id, parent_id),
            context={"node_id": node_id, "parent_id": parent_id},
        )

    # -- maintenance --------------------------------------------------------

    async def import_nodes(self, records: Iterable[RecordInput]) -> int:
        """Bulk load explicit-id records in one unit of work."""
        records = list(records)
        return await self._run(
            "import_nodes",
            lambda session: self._mutator.import_nodes(session, records),
            context={"count": len(records)},
        )

    async def compact(self, parent_id: Optional[int]) -> int:
        return await self._run(
            "compact",
            lambda session: self._mutator.compact(session, parent_id),
            context={"parent_id": parent_id},
        )

    async def close(self) -> None:
        await self._store.close()
