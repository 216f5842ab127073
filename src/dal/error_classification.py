"""Provider-aware classification of backend driver errors.

Driver exceptions (asyncpg, sqlite3) are classified into a small set of
categories and translated into the forest error taxonomy: integrity failures
become ``ConstraintViolation``, retryable failures become
``TransientStoreError`` and anything else propagates unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, NoReturn

from common.config.env import get_env_bool
from common.errors import ConstraintViolation, TransientStoreError

logger = logging.getLogger(__name__)

# SQLSTATE codes raised by PostgreSQL
_SQLSTATE_CATEGORIES: dict[str, str] = {
    "23505": "unique_violation",
    "23503": "foreign_key_violation",
    "23514": "check_violation",
    "40001": "serialization",
    "40P01": "deadlock",
    "55P03": "lock_timeout",
    "57014": "timeout",
    "08000": "connectivity",
    "08003": "connectivity",
    "08006": "connectivity",
}

# Which stored invariant each integrity category protects
CONSTRAINT_INVARIANTS: dict[str, str] = {
    "unique_violation": "sibling_position_unique",
    "foreign_key_violation": "parent_exists",
    "check_violation": "node_check",
}

_CONNECTIVITY_FRAGMENTS = (
    "could not connect",
    "connection refused",
    "connection reset",
    "connection was closed",
)

RETRYABLE_CATEGORIES = {
    "serialization",
    "deadlock",
    "lock_timeout",
    "timeout",
    "connectivity",
}

# Recovery hints for each error category
RECOVERY_HINTS: dict[str, str] = {
    "unique_violation": "Two siblings would share a position; check the anchor and target ids",
    "foreign_key_violation": "The parent does not exist or still has children",
    "check_violation": "Position must be non-negative and a node cannot parent itself",
    "serialization": "Retry automatically; reduce concurrent writes under the same parent",
    "deadlock": "Retry automatically; concurrent moves locked rows in opposite order",
    "lock_timeout": "Retry automatically after a short delay",
    "timeout": "Retry automatically; consider raising the command timeout",
    "connectivity": "Check network configuration and database availability",
    "unknown": "Inspect error details for root cause",
}


@dataclass(frozen=True)
class ErrorClassification:
    """Structured provider-aware error classification."""

    category: str
    provider: str
    is_retryable: bool


def classify_error(provider: str, exc: Exception) -> str:
    """Classify an error into a provider-agnostic category."""
    return classify_error_info(provider, exc).category


def classify_error_info(provider: str, exc: Exception) -> ErrorClassification:
    """Classify an error into a provider-aware category with retryability."""
    provider = (provider or "unknown").lower()
    message = str(exc).lower()
    class_name = exc.__class__.__name__.lower()

    sqlstate = getattr(exc, "sqlstate", None)
    if isinstance(sqlstate, str) and sqlstate in _SQLSTATE_CATEGORIES:
        return _classification(_SQLSTATE_CATEGORIES[sqlstate], provider)

    if provider == "sqlite":
        if "unique constraint failed" in message:
            return _classification("unique_violation", provider)
        if "foreign key constraint failed" in message:
            return _classification("foreign_key_violation", provider)
        if "check constraint failed" in message:
            return _classification("check_violation", provider)
        if _matches_any(message, ("database is locked", "database table is locked")):
            return _classification("lock_timeout", provider)

    if provider == "postgres":
        if _matches_any(message, ("serialization failure", "could not serialize")):
            return _classification("serialization", provider)
        if "deadlock detected" in message:
            return _classification("deadlock", provider)

    if isinstance(exc, TimeoutError) or _matches_any(message, ("timeout", "timed out")):
        return _classification("timeout", provider)
    if isinstance(exc, ConnectionError) or _matches_any(message, _CONNECTIVITY_FRAGMENTS):
        return _classification("connectivity", provider)
    if class_name in {"connectiondoesnotexisterror", "interfaceerror"}:
        return _classification("connectivity", provider)

    return _classification("unknown", provider)


def translate_store_error(
    provider: str, operation: str, exc: Exception, **context: Any
) -> Exception:
    """Translate a driver error into the forest taxonomy (or return it unchanged)."""
    info = classify_error_info(provider, exc)
    if info.category != "unknown":
        emit_classified_error(provider, operation, info, exc)

    invariant = CONSTRAINT_INVARIANTS.get(info.category)
    if invariant is not None:
        return ConstraintViolation(
            f"{operation} rejected by {provider}: {exc}",
            invariant=invariant,
            provider=provider,
            operation=operation,
            **context,
        )
    if info.is_retryable:
        return TransientStoreError(
            f"{operation} aborted by {provider}: {exc}",
            category=info.category,
            provider=provider,
            operation=operation,
            **context,
        )
    return exc


def raise_store_error(provider: str, operation: str, exc: Exception, **context: Any) -> NoReturn:
    """Raise the translated form of ``exc``, chaining the original."""
    translated = translate_store_error(provider, operation, exc, **context)
    if translated is exc:
        raise exc
    raise translated from exc


def emit_classified_error(
    provider: str, operation: str, info: ErrorClassification, exc: Exception
) -> None:
    """Emit structured telemetry for classified errors when enabled.

    Sets error.classification.* span attributes for observability dashboards.
    """
    if not get_env_bool("FOREST_CLASSIFIED_ERROR_TELEMETRY", True):
        return

    recovery_hint = RECOVERY_HINTS.get(info.category, RECOVERY_HINTS["unknown"])

    try:
        from opentelemetry import trace

        span = trace.get_current_span()
        if span and span.is_recording():
            span.set_attribute("error.classification.category", info.category)
            span.set_attribute("error.classification.provider", provider)
            span.set_attribute("error.classification.operation", operation)
            span.set_attribute("error.classification.is_retryable", info.is_retryable)
            span.set_attribute("error.classification.recovery_hint", recovery_hint)
    except Exception as span_exc:
        logger.debug("Span annotation failed for %s: %s", operation, span_exc)

    log = logger.warning if info.is_retryable else logger.info
    log(
        "store_error_classified",
        extra={
            "event": "store_error_classified",
            "provider": provider,
            "operation": operation,
            "error_category": info.category,
            "error_type": exc.__class__.__name__,
            "is_retryable": info.is_retryable,
            "recovery_hint": recovery_hint,
        },
    )


def _matches_any(text: str, fragments: tuple[str, ...]) -> bool:
    return any(fragment in text for fragment in fragments)


def _classification(category: str, provider: str) -> ErrorClassification:
    return ErrorClassification(
        category=category,
        provider=provider,
        is_retryable=category in RETRYABLE_CATEGORIES,
    )
