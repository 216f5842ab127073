from abc import ABC, abstractmethod
from typing import AsyncContextManager, Iterable, List, Optional, Protocol, runtime_checkable

from common.errors import NotFound
from common.models.node import Node


class NodeStoreSession(ABC):
    """One atomic unit of work against a node store.

    Writes become visible to other units only when the unit commits. Sibling
    position uniqueness is checked at commit, so shifts may pass through
    states that hold duplicate positions. Roots are not siblings of each
    other: their positions are neither unique nor ever shifted.
    """

    @abstractmethod
    async def create(
        self,
        parent_id: Optional[int],
        position: int,
        label: str,
        node_id: Optional[int] = None,
    ) -> int:
        """Insert a node and return its id (issued unless ``node_id`` is given)."""
        pass

    @abstractmethod
    async def find(self, node_id: int, for_update: bool = False) -> Optional[Node]:
        """Return the node or None when absent."""
        pass

    async def get(self, node_id: int, for_update: bool = False) -> Node:
        """Return the node or raise NotFound."""
        node = await self.find(node_id, for_update=for_update)
        if node is None:
            raise NotFound(node_id)
        return node

    @abstractmethod
    async def update(self, node_id: int, parent_id: Optional[int], position: int) -> None:
        """Rewrite a node's parent and position."""
        pass

    @abstractmethod
    async def delete(self, node_id: int) -> None:
        """Remove a childless node."""
        pass

    @abstractmethod
    async def shift_siblings(
        self, parent_id: Optional[int], after_position: Optional[int], delta: int
    ) -> int:
        """Add ``delta`` to the position of every child of ``parent_id`` whose
        position is greater than ``after_position`` (all children when None).
        Roots are never shifted, so ``parent_id=None`` changes nothing and
        returns 0.
        """
        pass

    @abstractmethod
    async def children_of(self, parent_ids: Iterable[Optional[int]]) -> List[Node]:
        """Return the direct children of any of the given parents."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored nodes."""
        pass

    @abstractmethod
    async def reseed_identity(self) -> None:
        """Make the next issued id exceed every stored id."""
        pass


@runtime_checkable
class NodeStore(Protocol):
    """Protocol for ordered-forest node persistence."""

    provider: str

    def unit_of_work(self, read_only: bool = False) -> AsyncContextManager[NodeStoreSession]:
        """Open an atomic unit; commit on clean exit, roll back on error."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...
