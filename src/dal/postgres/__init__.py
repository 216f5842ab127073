"""PostgreSQL DAL Implementations.

This package contains the asyncpg-backed node store and its configuration.
"""

from .config import PostgresNodeStoreConfig
from .node_store import PostgresNodeStore

__all__ = [
    "PostgresNodeStore",
    "PostgresNodeStoreConfig",
]
