"""Common error taxonomy helpers."""

from common.errors.error_codes import ErrorCode, error_code_group, parse_error_code
from common.errors.exceptions import (
    ConstraintViolation,
    ForestError,
    HasChildren,
    InvariantViolated,
    NotFound,
    SelfReference,
    TransientStoreError,
)

__all__ = [
    "ConstraintViolation",
    "ErrorCode",
    "ForestError",
    "HasChildren",
    "InvariantViolated",
    "NotFound",
    "SelfReference",
    "TransientStoreError",
    "error_code_group",
    "parse_error_code",
]
