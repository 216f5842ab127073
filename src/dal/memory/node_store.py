"""In-process node store.

Each writer unit stages its changes in an overlay on top of the committed
state and validates every storage invariant once, when the unit commits. The
committed maps are replaced wholesale on commit, so a reader unit keeps
seeing the snapshot it started with.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Set

from common.errors import ConstraintViolation, HasChildren, NotFound
from common.interfaces.node_store import NodeStoreSession
from common.models.node import Node
from dal.validation import check_label, check_placement

logger = logging.getLogger(__name__)

_Children = Dict[Optional[int], Set[int]]


class MemoryNodeStore:
    """Node store held in process memory; writer units are serialized by a lock."""

    provider = "memory"

    def __init__(self) -> None:
        """Initialize an empty forest."""
        self._nodes: Dict[int, Node] = {}
        self._children: _Children = {}
        self._next_id = 1
        self._write_lock = asyncio.Lock()

    @asynccontextmanager
    async def unit_of_work(self, read_only: bool = False):
        """Yield a session; staged writes are validated and applied on clean exit."""
        if read_only:
            yield _MemorySession(self, self._nodes, self._children, read_only=True)
            return

        async with self._write_lock:
            session = _MemorySession(self, self._nodes, self._children)
            yield session
            self._nodes, self._children = session.validated_state()

    async def close(self) -> None:
        """Nothing to release for the in-process store."""
        return None

    def issue_id(self) -> int:
        node_id = self._next_id
        self._next_id += 1
        return node_id


class _MemorySession(NodeStoreSession):
    def __init__(
        self,
        store: MemoryNodeStore,
        nodes: Dict[int, Node],
        children: _Children,
        read_only: bool = False,
    ) -> None:
        self._store = store
        self._base_nodes = nodes
        self._base_children = children
        self._read_only = read_only
        # None marks a staged deletion
        self._staged: Dict[int, Optional[Node]] = {}
        self._joined: _Children = {}
        self._left: _Children = {}
        self._reseed = False

    def _stage(self, node_id: int, node: Optional[Node]) -> None:
        previous = self._lookup(node_id)
        if previous is not None and (node is None or node.parent_id != previous.parent_id):
            self._joined.get(previous.parent_id, set()).discard(node_id)
            self._left.setdefault(previous.parent_id, set()).add(node_id)
        if node is not None:
            self._left.get(node.parent_id, set()).discard(node_id)
            self._joined.setdefault(node.parent_id, set()).add(node_id)
        self._staged[node_id] = node

    # -- reads --------------------------------------------------------------

    def _lookup(self, node_id: int) -> Optional[Node]:
        if node_id in self._staged:
            return self._staged[node_id]
        return self._base_nodes.get(node_id)

    def _child_ids(self, parent_id: Optional[int]) -> Set[int]:
        ids = set(self._base_children.get(parent_id, ()))
        ids.difference_update(self._left.get(parent_id, ()))
        ids.update(self._joined.get(parent_id, ()))
        return ids

    async def find(self, node_id: int, for_update: bool = False) -> Optional[Node]:
        return self._lookup(node_id)

    async def children_of(self, parent_ids: Iterable[Optional[int]]) -> List[Node]:
        result: List[Node] = []
        for parent_id in dict.fromkeys(parent_ids):
            result.extend(self._lookup(child_id) for child_id in self._child_ids(parent_id))
        return result

    async def count(self) -> int:
        total = len(self._base_nodes)
        for node_id, node in self._staged.items():
            if node_id in self._base_nodes:
                total -= node is None
            else:
                total += node is not None
        return total

    # -- writes -------------------------------------------------------------

    def _check_writable(self) -> None:
        if self._read_only:
            raise RuntimeError("Cannot write through a read-only unit of work.")

    def _check_placement(self, node_id: int, parent_id: Optional[int], position: int) -> None:
        check_placement(node_id, parent_id, position)
        if parent_id is not None and self._lookup(parent_id) is None:
            raise ConstraintViolation(
                f"Parent {parent_id} does not exist.",
                invariant="parent_exists",
                node_id=node_id,
                parent_id=parent_id,
            )

    async def create(
        self,
        parent_id: Optional[int],
        position: int,
        label: str,
        node_id: Optional[int] = None,
    ) -> int:
        self._check_writable()
        check_label(label)
        if node_id is None:
            node_id = self._store.issue_id()
        elif self._lookup(node_id) is not None:
            raise ConstraintViolation(
                f"Node id {node_id} is already in use.", invariant="unique_id", node_id=node_id
            )
        self._check_placement(node_id, parent_id, position)
        self._stage(node_id, Node(id=node_id, parent_id=parent_id, position=position, label=label))
        return node_id

    async def update(self, node_id: int, parent_id: Optional[int], position: int) -> None:
        self._check_writable()
        node = self._lookup(node_id)
        if node is None:
            raise NotFound(node_id)
        self._check_placement(node_id, parent_id, position)
        self._stage(node_id, replace(node, parent_id=parent_id, position=position))

    async def delete(self, node_id: int) -> None:
        self._check_writable()
        if self._lookup(node_id) is None:
            raise NotFound(node_id)
        if self._child_ids(node_id):
            raise HasChildren(node_id)
        self._stage(node_id, None)

    async def shift_siblings(
        self, parent_id: Optional[int], after_position: Optional[int], delta: int
    ) -> int:
        self._check_writable()
        if parent_id is None:
            return 0
        shifted = 0
        for child_id in self._child_ids(parent_id):
            node = self._lookup(child_id)
            if after_position is None or node.position > after_position:
                self._stage(child_id, replace(node, position=node.position + delta))
                shifted += 1
        return shifted

    async def reseed_identity(self) -> None:
        self._check_writable()
        self._reseed = True

    # -- commit -------------------------------------------------------------

    def validated_state(self) -> tuple[Dict[int, Node], _Children]:
        """Check every invariant touched by this unit and build the next state."""
        touched_parents: Set[Optional[int]] = set()
        for node_id, node in self._staged.items():
            previous = self._base_nodes.get(node_id)
            if previous is not None:
                touched_parents.add(previous.parent_id)
            if node is None:
                if self._child_ids(node_id):
                    raise HasChildren(node_id)
                continue
            touched_parents.add(node.parent_id)
            self._check_placement(node_id, node.parent_id, node.position)

        children = dict(self._base_children)
        for parent_id in touched_parents:
            child_ids = self._child_ids(parent_id)
            # Roots may share positions
            if parent_id is not None:
                self._check_unique_positions(parent_id, child_ids)
            if child_ids:
                children[parent_id] = child_ids
            else:
                children.pop(parent_id, None)

        nodes = dict(self._base_nodes)
        for node_id, node in self._staged.items():
            if node is None:
                nodes.pop(node_id, None)
            else:
                nodes[node_id] = node

        if self._reseed and nodes:
            self._store._next_id = max(self._store._next_id, max(nodes) + 1)
        if self._staged:
            logger.debug("Committed %d staged node writes", len(self._staged))
        return nodes, children

    def _check_unique_positions(self, parent_id: int, child_ids: Set[int]) -> None:
        positions: Dict[int, int] = {}
        for child_id in child_ids:
            position = self._lookup(child_id).position
            if position in positions:
                raise ConstraintViolation(
                    f"Nodes {positions[position]} and {child_id} share position "
                    f"{position} under parent {parent_id}.",
                    invariant="sibling_position_unique",
                    parent_id=parent_id,
                    position=position,
                )
            positions[position] = child_id
