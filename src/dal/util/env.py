"""Provider normalization and environment variable helpers.

This module provides utilities for reading and normalizing the provider
environment variables used by the DAL factory.

Canonical Provider IDs (internal, lowercase):
- "memory" - in-process node store
- "sqlite" - embedded SQLite node store
- "postgres" - PostgreSQL node store

User-Facing Aliases (case-insensitive):
- In-process: "memory", "mem", "in-memory", "inmemory"
- SQLite: "sqlite", "sqlite3"
- PostgreSQL: "postgresql", "postgres", "pg"

Example:
    >>> normalize_provider("PostgreSQL")
    'postgres'
    >>> get_provider_env("NODE_STORE_PROVIDER", "memory", {"memory", "sqlite", "postgres"})
    'memory'
"""

from typing import Set

# Alias mappings: user-friendly names -> canonical provider ID
PROVIDER_ALIASES: dict[str, str] = {
    # In-process aliases
    "memory": "memory",
    "mem": "memory",
    "in-memory": "memory",
    "inmemory": "memory",
    # SQLite aliases
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
    # PostgreSQL aliases
    "postgresql": "postgres",
    "postgres": "postgres",
    "pg": "postgres",
}


def normalize_provider(value: str) -> str:
    """Normalize a provider value to its canonical form.

    Strips whitespace, lowercases and maps known aliases. Unknown values pass
    through unchanged; validation happens in ``get_provider_env``.

    Example:
        >>> normalize_provider("  PG  ")
        'postgres'
        >>> normalize_provider("custom-provider")
        'custom-provider'
    """
    cleaned = value.strip().lower()
    return PROVIDER_ALIASES.get(cleaned, cleaned)


def get_provider_env(var_name: str, default: str, allowed: Set[str]) -> str:
    """Read, normalize and validate a provider environment variable.

    Args:
        var_name: Name of the environment variable (e.g., "NODE_STORE_PROVIDER").
        default: Canonical provider ID used when the variable is unset.
        allowed: Set of valid canonical provider IDs.

    Returns:
        The normalized, validated canonical provider ID.

    Raises:
        ValueError: If the normalized value is not in the allowed set. The
            message names the variable, the raw value and the allowed values.
    """
    from common.config.env import get_env_str

    raw_value = get_env_str(var_name)

    if raw_value is None:
        return default

    normalized = normalize_provider(raw_value)

    if normalized not in allowed:
        allowed_list = ", ".join(sorted(allowed))
        raise ValueError(
            f"Invalid provider for {var_name}: '{raw_value}'. " f"Allowed values: {allowed_list}"
        )

    return normalized
