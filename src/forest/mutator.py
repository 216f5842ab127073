"""Structural edits of the ordered forest.

Every operation takes an open writer session and composes the store
primitives inside it; the caller owns the unit of work, so an operation
either commits whole or not at all. Sibling uniqueness is checked when the
unit commits, which lets shifts pass through duplicate positions.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from common.errors import ConstraintViolation, InvariantViolated, SelfReference
from common.interfaces import NodeStoreSession
from common.models.node import NodeRecord
from forest.reader import SubtreeReader

logger = logging.getLogger(__name__)

Placement = Tuple[Optional[int], int, str]
RecordInput = Union[NodeRecord, Mapping[str, Any]]


def parse_records(records: Iterable[RecordInput]) -> List[NodeRecord]:
    """Validate import records, reporting the first bad one as a constraint violation."""
    parsed: List[NodeRecord] = []
    for index, record in enumerate(records):
        if isinstance(record, NodeRecord):
            parsed.append(record)
            continue
        try:
            parsed.append(NodeRecord.model_validate(record))
        except ValidationError as e:
            raise ConstraintViolation(
                f"Import record {index} is invalid: {e.errors()[0]['msg']}",
                invariant="valid_record",
                record_index=index,
            ) from e
    return parsed


def parents_first(records: Sequence[NodeRecord]) -> List[NodeRecord]:
    """Order records so each one follows the record naming it as parent."""
    by_id: Dict[int, NodeRecord] = {}
    for record in records:
        if record.id in by_id:
            raise ConstraintViolation(
                f"Node id {record.id} appears twice in the import.",
                invariant="unique_id",
                node_id=record.id,
            )
        by_id[record.id] = record

    waiting: Dict[int, List[NodeRecord]] = {}
    ready: List[NodeRecord] = []
    for record in records:
        if record.parent_id is None or record.parent_id not in by_id:
            ready.append(record)
        else:
            waiting.setdefault(record.parent_id, []).append(record)

    ordered: List[NodeRecord] = []
    while ready:
        record = ready.pop()
        ordered.append(record)
        ready.extend(waiting.pop(record.id, ()))

    if len(ordered) != len(records):
        stuck = sorted(record.id for group in waiting.values() for record in group)
        raise ConstraintViolation(
            f"Import records {stuck} form a parent cycle.",
            invariant="acyclic",
            node_ids=",".join(str(node_id) for node_id in stuck),
        )
    return ordered


class PositionMutator:
    """Insert, delete and move operations that keep sibling order intact."""

    def __init__(self, reader: SubtreeReader, max_depth: int = 10_000) -> None:
        self._reader = reader
        self._max_depth = max_depth

    async def _ensure_parent(self, session: NodeStoreSession, parent_id: Optional[int]) -> None:
        if parent_id is not None:
            await session.get(parent_id, for_update=True)

    async def _ensure_not_descendant(
        self, session: NodeStoreSession, node_id: int, candidate_id: Optional[int]
    ) -> None:
        """Raise SelfReference if ``candidate_id`` is ``node_id`` or lies below it."""
        current = candidate_id
        steps = 0
        while current is not None:
            if current == node_id:
                raise SelfReference(node_id, candidate_id)
            steps += 1
            if steps > self._max_depth:
                raise InvariantViolated(
                    f"Ancestor chain of {candidate_id} is longer than {self._max_depth}.",
                    node_id=candidate_id,
                    max_depth=self._max_depth,
                )
            current = (await session.get(current)).parent_id

    # -- inserts ------------------------------------------------------------

    async def create(
        self, session: NodeStoreSession, parent_id: Optional[int], position: int, label: str
    ) -> int:
        """Create a node at an explicit position; no siblings are shifted."""
        if parent_id is not None and await session.find(parent_id) is None:
            raise ConstraintViolation(
                f"Parent {parent_id} does not exist.",
                invariant="parent_exists",
                parent_id=parent_id,
            )
        return await session.create(parent_id, position, label)

    async def create_many(
        self, session: NodeStoreSession, placements: Sequence[Placement]
    ) -> List[int]:
        return [
            await self.create(session, parent_id, position, label)
            for parent_id, position, label in placements
        ]

    async def insert_after(self, session: NodeStoreSession, anchor_id: int, label: str) -> int:
        anchor = await session.get(anchor_id, for_update=True)
        await session.shift_siblings(anchor.parent_id, anchor.position, 1)
        return await session.create(anchor.parent_id, anchor.position + 1, label)

    async def insert_first(
        self, session: NodeStoreSession, parent_id: Optional[int], label: str
    ) -> int:
        await self._ensure_parent(session, parent_id)
        await session.shift_siblings(parent_id, None, 1)
        return await session.create(parent_id, 0, label)

    async def insert_last(
        self, session: NodeStoreSession, parent_id: Optional[int], label: str
    ) -> int:
        await self._ensure_parent(session, parent_id)
        siblings = await session.children_of([parent_id])
        position = max((sibling.position for sibling in siblings), default=-1) + 1
        return await session.create(parent_id, position, label)

    # -- deletes ------------------------------------------------------------

    async def delete(self, session: NodeStoreSession, node_id: int) -> None:
        node = await session.get(node_id, for_update=True)
        await session.delete(node_id)
        await session.shift_siblings(node.parent_id, node.position, -1)

    async def delete_cascade(self, session: NodeStoreSession, node_id: int) -> int:
        """Delete a node with its whole subtree; returns the number of nodes removed."""
        node = await session.get(node_id, for_update=True)
        descendants = await self._reader.read(session, node_id)
        # Reversed pre-order visits every child before its parent
        for descendant in reversed(descendants):
            await session.delete(descendant.id)
        await session.delete(node_id)
        await session.shift_siblings(node.parent_id, node.position, -1)
        logger.debug(
            "Cascading delete",
            extra={"node_id": node_id, "removed": len(descendants) + 1},
        )
        return len(descendants) + 1

    # -- moves --------------------------------------------------------------

    async def move_after(self, session: NodeStoreSession, node_id: int, target_id: int) -> None:
        """Make ``node_id`` the sibling that directly follows ``target_id``.

        Room is made at the destination before the node is relocated, and the
        origin gap is closed last using the placement captured before the move.
        """
        if node_id == target_id:
            raise SelfReference(node_id, target_id)
        node = await session.get(node_id, for_update=True)
        target = await session.get(target_id, for_update=True)
        await self._ensure_not_descendant(session, node_id, target_id)

        await session.shift_siblings(target.parent_id, target.position, 1)
        await session.update(node_id, target.parent_id, target.position + 1)
        await session.shift_siblings(node.parent_id, node.position, -1)

    async def move_first(
        self, session: NodeStoreSession, node_id: int, parent_id: Optional[int]
    ) -> None:
        """Make ``node_id`` the first child of ``parent_id``.

        With ``parent_id=None`` the node becomes a root at position 0; other
        roots keep their positions.
        """
        if parent_id == node_id:
            raise SelfReference(node_id, parent_id)
        node = await session.get(node_id, for_update=True)
        await self._ensure_parent(session, parent_id)
        await self._ensure_not_descendant(session, node_id, parent_id)

        await session.shift_siblings(parent_id, None, 1)
        await session.update(node_id, parent_id, 0)
        await session.shift_siblings(node.parent_id, node.position, -1)

    # -- maintenance --------------------------------------------------------

    async def import_nodes(
        self, session: NodeStoreSession, records: Iterable[RecordInput]
    ) -> int:
        """Load explicit-id records, parents before children, then reseed ids."""
        ordered = parents_first(parse_records(records))
        for record in ordered:
            await session.create(record.parent_id, record.position, record.label, node_id=record.id)
        await session.reseed_identity()
        return len(ordered)

    async def compact(self, session: NodeStoreSession, parent_id: Optional[int]) -> int:
        """Renumber the children of ``parent_id`` to 0..n-1, keeping their order."""
        await self._ensure_parent(session, parent_id)
        children = sorted(await session.children_of([parent_id]), key=lambda node: node.position)
        changed = 0
        # Ascending order only ever moves a child onto a free, lower position
        for index, child in enumerate(children):
            if child.position != index:
                await session.update(child.id, parent_id, index)
                changed += 1
        return changed
