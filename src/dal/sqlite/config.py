from dataclasses import dataclass

from common.config.env import get_env_float, get_env_str


@dataclass(frozen=True)
class SqliteNodeStoreConfig:
    """Configuration for the embedded SQLite node store."""

    path: str = ":memory:"
    busy_timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "SqliteNodeStoreConfig":
        """Load SQLite config from environment variables."""
        path = get_env_str("FOREST_SQLITE_PATH", ":memory:")
        busy_timeout_seconds = get_env_float("FOREST_SQLITE_BUSY_TIMEOUT_SECS", 5.0)
        return cls(path=path, busy_timeout_seconds=busy_timeout_seconds)
