"""In-process DAL components."""

from .node_store import MemoryNodeStore

__all__ = ["MemoryNodeStore"]
