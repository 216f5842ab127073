"""Subtree materialization.

The subtree below a root is expanded level by level with one batched
``children_of`` query per level, then emitted in pre-order from an explicit
stack. Children are visited in ascending position, so the output is also
sorted by ``path``.
"""

import logging
from typing import Dict, List, Optional, Set

from common.errors import InvariantViolated
from common.interfaces import NodeStoreSession
from common.models.node import AnnotatedNode, Node

logger = logging.getLogger(__name__)

_Adjacency = Dict[Optional[int], List[Node]]


class SubtreeReader:
    """Builds annotated descendant lists; never writes to the store."""

    def __init__(self, max_depth: int = 10_000) -> None:
        self._max_depth = max_depth

    async def read(self, session: NodeStoreSession, root_id: int) -> List[AnnotatedNode]:
        """Return every descendant of ``root_id`` (excluded) in path order.

        Raises:
            NotFound: ``root_id`` does not exist.
            InvariantViolated: a cycle or a runaway depth was found.
        """
        await session.get(root_id)
        adjacency = await self._expand(session, root_id)
        return self._annotate(adjacency, root_id)

    async def read_roots(self, session: NodeStoreSession) -> List[AnnotatedNode]:
        """Return the whole forest, treating the roots as children of a virtual root."""
        adjacency = await self._expand(session, None)
        return self._annotate(adjacency, None)

    async def _expand(self, session: NodeStoreSession, root_id: Optional[int]) -> _Adjacency:
        adjacency: _Adjacency = {}
        visited: Set[int] = set() if root_id is None else {root_id}
        frontier: List[Optional[int]] = [root_id]
        depth = 0

        while frontier:
            level = await session.children_of(frontier)
            if not level:
                break
            depth += 1
            if depth > self._max_depth:
                raise InvariantViolated(
                    f"Subtree below {root_id} is deeper than {self._max_depth} levels.",
                    root_id=root_id,
                    max_depth=self._max_depth,
                )

            frontier = []
            for node in level:
                if node.id in visited:
                    raise InvariantViolated(
                        f"Node {node.id} was reached twice below {root_id}; "
                        "the parent relation has a cycle.",
                        root_id=root_id,
                        node_id=node.id,
                    )
                visited.add(node.id)
                adjacency.setdefault(node.parent_id, []).append(node)
                frontier.append(node.id)

        for siblings in adjacency.values():
            # Roots may share a position; id breaks the tie
            siblings.sort(key=lambda node: (node.position, node.id))
        logger.debug(
            "Expanded subtree",
            extra={"root_id": root_id, "levels": depth, "nodes": len(visited)},
        )
        return adjacency

    @staticmethod
    def _annotate(adjacency: _Adjacency, root_id: Optional[int]) -> List[AnnotatedNode]:
        result: List[AnnotatedNode] = []

        # Pushed in reverse so the lowest position is popped first
        top = adjacency.get(root_id, [])
        stack = [(top[i], 1, (top[i].position,), i + 1) for i in range(len(top) - 1, -1, -1)]
        while stack:
            node, depth, path, rank = stack.pop()
            result.append(
                AnnotatedNode(
                    id=node.id,
                    parent_id=node.parent_id,
                    label=node.label,
                    position=node.position,
                    depth=depth,
                    path=path,
                    rank=rank,
                )
            )
            children = adjacency.get(node.id, [])
            for index in range(len(children) - 1, -1, -1):
                child = children[index]
                stack.append((child, depth + 1, path + (child.position,), index + 1))
        return result
