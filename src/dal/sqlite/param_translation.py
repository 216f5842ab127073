import re
from typing import Any, List, Sequence, Tuple

PLACEHOLDER_PATTERN = re.compile(r"\$(\d+)")


def translate_postgres_params_to_sqlite(sql: str, params: Sequence[Any]) -> Tuple[str, List[Any]]:
    """Translate Postgres-style $N placeholders to SQLite ? placeholders.

    Placeholders may repeat or appear out of order; the returned parameter list
    follows their order of appearance.
    """
    matches = list(PLACEHOLDER_PATTERN.finditer(sql))
    if not matches:
        if params:
            raise ValueError("SQLite query received params but no $N placeholders were found.")
        return sql, []

    indices = [int(match.group(1)) for match in matches]
    if min(indices) <= 0:
        raise ValueError("Invalid placeholder index $0; placeholders must start at $1.")

    max_index = max(indices)
    if set(indices) != set(range(1, max_index + 1)):
        raise ValueError(
            f"Invalid placeholder sequence: expected $1..${max_index} without gaps, got "
            f"{sorted(set(indices))}."
        )
    if max_index != len(params):
        raise ValueError(
            f"Placeholder count mismatch: expected {max_index} params, got {len(params)}."
        )

    sqlite_params = [params[i - 1] for i in indices]
    return PLACEHOLDER_PATTERN.sub("?", sql), sqlite_params
