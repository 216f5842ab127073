"""Exception taxonomy raised by node stores and the forest engine."""

from __future__ import annotations

from typing import Any, Optional

from common.errors.error_codes import ErrorCode


class ForestError(Exception):
    """Base class for every failure surfaced by the forest engine.

    ``context`` holds bounded structured fields (ids, positions, provider) that
    are safe to attach to log records and spans. Labels are never included.
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = {key: value for key, value in context.items() if value is not None}

    def to_dict(self) -> dict[str, Any]:
        """Return a serializable representation for error envelopes."""
        return {"code": self.code.value, "message": self.message, **self.context}


class NotFound(ForestError):
    """A referenced node id does not exist."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, node_id: Optional[int], message: Optional[str] = None, **context: Any):
        super().__init__(message or f"Node {node_id} does not exist.", node_id=node_id, **context)
        self.node_id = node_id


class ConstraintViolation(ForestError):
    """A write would break a storage invariant (self-parenting, negative
    position, duplicate sibling position or dangling parent)."""

    code = ErrorCode.CONSTRAINT_VIOLATION

    def __init__(self, message: str, *, invariant: Optional[str] = None, **context: Any):
        super().__init__(message, invariant=invariant, **context)
        self.invariant = invariant


class HasChildren(ForestError):
    """A non-cascading delete was blocked by existing children."""

    code = ErrorCode.HAS_CHILDREN

    def __init__(self, node_id: int, **context: Any):
        super().__init__(
            f"Node {node_id} still has children; use a cascading delete.",
            node_id=node_id,
            **context,
        )
        self.node_id = node_id


class SelfReference(ForestError):
    """A move names the node itself, or one of its descendants, as destination."""

    code = ErrorCode.SELF_REFERENCE

    def __init__(self, node_id: int, target_id: int, **context: Any):
        super().__init__(
            f"Cannot place node {node_id} relative to {target_id}: "
            "the destination is the node itself or lies inside its subtree.",
            node_id=node_id,
            target_id=target_id,
            **context,
        )
        self.node_id = node_id
        self.target_id = target_id


class InvariantViolated(ForestError):
    """The stored tree is corrupt (a cycle or runaway depth was detected)."""

    code = ErrorCode.INVARIANT_VIOLATED


class TransientStoreError(ForestError):
    """The backing store aborted the unit of work; the operation may be retried."""

    code = ErrorCode.TRANSIENT_STORE_ERROR

    def __init__(self, message: str, *, category: str = "transient", **context: Any):
        super().__init__(message, category=category, **context)
        self.category = category
