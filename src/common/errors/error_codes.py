"""Canonical error-code taxonomy for forest store and engine flows."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Bounded canonical error codes for external contracts and observability."""

    NOT_FOUND = "NOT_FOUND"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    HAS_CHILDREN = "HAS_CHILDREN"
    SELF_REFERENCE = "SELF_REFERENCE"
    INVARIANT_VIOLATED = "INVARIANT_VIOLATED"
    TRANSIENT_STORE_ERROR = "TRANSIENT_STORE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_CODE_GROUPS: dict[ErrorCode, str] = {
    ErrorCode.NOT_FOUND: "REQUEST",
    ErrorCode.CONSTRAINT_VIOLATION: "REQUEST",
    ErrorCode.HAS_CHILDREN: "REQUEST",
    ErrorCode.SELF_REFERENCE: "REQUEST",
    ErrorCode.INVARIANT_VIOLATED: "INTERNAL",
    ErrorCode.TRANSIENT_STORE_ERROR: "STORE",
    ErrorCode.INTERNAL_ERROR: "INTERNAL",
}


def parse_error_code(value: str | ErrorCode | None) -> ErrorCode | None:
    """Parse a canonical error code from raw values."""
    if isinstance(value, ErrorCode):
        return value
    if value is None:
        return None
    normalized = str(value).strip().upper()
    if not normalized:
        return None
    try:
        return ErrorCode(normalized)
    except ValueError:
        return None


def error_code_group(code: str | ErrorCode | None) -> str:
    """Return the coarse group for a canonical error code."""
    parsed = parse_error_code(code)
    if parsed is None:
        return _CODE_GROUPS[ErrorCode.INTERNAL_ERROR]
    return _CODE_GROUPS[parsed]
