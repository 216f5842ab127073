"""Store interfaces shared by the DAL backends and the forest engine."""

from .node_store import NodeStore, NodeStoreSession

__all__ = [
    "NodeStore",
    "NodeStoreSession",
]
