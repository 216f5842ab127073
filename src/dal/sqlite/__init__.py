"""SQLite-backed DAL components."""

from .config import SqliteNodeStoreConfig
from .node_store import SqliteNodeStore
from .param_translation import translate_postgres_params_to_sqlite

__all__ = [
    "SqliteNodeStore",
    "SqliteNodeStoreConfig",
    "translate_postgres_params_to_sqlite",
]
