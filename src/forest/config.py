from dataclasses import dataclass

from common.config.env import get_env_float, get_env_int


@dataclass(frozen=True)
class ForestSettings:
    """Engine settings: the reader's depth guard and the transient-failure retry policy."""

    max_depth: int = 10_000
    retry_max_attempts: int = 3
    retry_base_delay: float = 0.05
    retry_max_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be positive, got {self.max_depth}.")
        if self.retry_max_attempts < 1:
            raise ValueError(
                f"retry_max_attempts must be at least 1, got {self.retry_max_attempts}."
            )
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            raise ValueError("Retry delays must be non-negative.")

    @classmethod
    def from_env(cls) -> "ForestSettings":
        """Load engine settings from environment variables."""
        return cls(
            max_depth=get_env_int("FOREST_MAX_DEPTH", 10_000),
            retry_max_attempts=get_env_int("FOREST_RETRY_MAX_ATTEMPTS", 3),
            retry_base_delay=get_env_float("FOREST_RETRY_BASE_DELAY", 0.05),
            retry_max_delay=get_env_float("FOREST_RETRY_MAX_DELAY", 1.0),
        )
