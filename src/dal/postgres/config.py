from dataclasses import dataclass

from common.config.env import get_env_float, get_env_int, get_env_str

ISOLATION_LEVELS = ("read_committed", "repeatable_read", "serializable")


@dataclass(frozen=True)
class PostgresNodeStoreConfig:
    """Connection and transaction settings for the PostgreSQL node store."""

    host: str = "localhost"
    port: int = 5432
    db_name: str = "forest"
    user: str = "postgres"
    password: str = "postgres"
    isolation: str = "serializable"
    pool_min_size: int = 1
    pool_max_size: int = 10
    command_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.isolation not in ISOLATION_LEVELS:
            allowed = ", ".join(ISOLATION_LEVELS)
            raise ValueError(
                f"Invalid isolation level '{self.isolation}'. Allowed values: {allowed}"
            )

    @property
    def dsn(self) -> str:
        return (
            f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.db_name}"
        )

    @classmethod
    def from_env(cls) -> "PostgresNodeStoreConfig":
        """Load PostgreSQL node store config from environment variables."""
        return cls(
            host=get_env_str("FOREST_DB_HOST", "localhost"),
            port=get_env_int("FOREST_DB_PORT", 5432),
            db_name=get_env_str("FOREST_DB_NAME", "forest"),
            user=get_env_str("FOREST_DB_USER", "postgres"),
            password=get_env_str("FOREST_DB_PASSWORD", "postgres"),
            isolation=get_env_str("FOREST_DB_ISOLATION", "serializable").strip().lower(),
            pool_min_size=get_env_int("FOREST_DB_POOL_MIN", 1),
            pool_max_size=get_env_int("FOREST_DB_POOL_MAX", 10),
            command_timeout_seconds=get_env_float("FOREST_DB_COMMAND_TIMEOUT", 30.0),
        )
