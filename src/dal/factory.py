"""DAL Factory with singleton, environment-driven provider selection.

This module provides the lazy singleton getter for the node store.
Provider selection is controlled via environment variables.

Environment Variables:
    NODE_STORE_PROVIDER: Provider for NodeStore (default: "memory")

Canonical Provider IDs:
    - "memory": in-process store, lost when the process exits
    - "sqlite": embedded SQLite file (FOREST_SQLITE_PATH)
    - "postgres": PostgreSQL via asyncpg (FOREST_DB_* variables)

Example:
    >>> from dal.factory import get_node_store
    >>> store = get_node_store()  # Returns MemoryNodeStore by default
"""

import logging
from typing import Optional

from common.interfaces import NodeStore
from dal.util.env import get_provider_env

logger = logging.getLogger(__name__)

# =============================================================================
# Provider Registries
# =============================================================================

NODE_STORE_PROVIDERS: "dict[str, type[NodeStore]]" = {}


# =============================================================================
# Singleton Instances
# =============================================================================

_node_store: Optional[NodeStore] = None


def _register_builtin_providers() -> None:
    # Import implementations lazily to avoid import loops and driver imports
    if "memory" not in NODE_STORE_PROVIDERS:
        from dal.memory import MemoryNodeStore

        NODE_STORE_PROVIDERS["memory"] = MemoryNodeStore
    if "sqlite" not in NODE_STORE_PROVIDERS:
        from dal.sqlite import SqliteNodeStore

        NODE_STORE_PROVIDERS["sqlite"] = SqliteNodeStore
    if "postgres" not in NODE_STORE_PROVIDERS:
        from dal.postgres import PostgresNodeStore

        NODE_STORE_PROVIDERS["postgres"] = PostgresNodeStore


# =============================================================================
# Singleton Getters
# =============================================================================


def get_node_store() -> NodeStore:
    """Get or create the singleton NodeStore instance.

    Provider is selected via NODE_STORE_PROVIDER env var.
    Default: "memory" (MemoryNodeStore)

    Returns:
        The singleton NodeStore instance.

    Raises:
        ValueError: If NODE_STORE_PROVIDER is set to an invalid value.
    """
    global _node_store
    if _node_store is None:
        _register_builtin_providers()

        provider = get_provider_env(
            "NODE_STORE_PROVIDER",
            default="memory",
            allowed=set(NODE_STORE_PROVIDERS.keys()),
        )
        logger.info(f"Initializing NodeStore with provider: {provider}")

        store_cls = NODE_STORE_PROVIDERS[provider]
        _node_store = store_cls()

    return _node_store


def reset_singletons() -> None:
    """Reset all singleton instances (for testing only).

    This allows tests to reinitialize stores with different providers.
    Should not be called in production code.
    """
    global _node_store

    _node_store = None
