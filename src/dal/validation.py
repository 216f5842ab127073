"""Placement checks shared by every node store backend."""

from typing import Any, Optional

from common.errors import ConstraintViolation


def check_label(label: Any) -> None:
    """Reject payloads that are not strings."""
    if not isinstance(label, str):
        raise ConstraintViolation(
            f"Label must be a string, got {type(label).__name__}.", invariant="label_present"
        )


def check_placement(node_id: Optional[int], parent_id: Optional[int], position: int) -> None:
    """Reject self-parenting and negative positions before they reach the backend."""
    if node_id is not None and parent_id is not None and parent_id == node_id:
        raise ConstraintViolation(
            f"Node {node_id} cannot be its own parent.",
            invariant="no_self_parent",
            node_id=node_id,
        )
    if not isinstance(position, int) or position < 0:
        raise ConstraintViolation(
            f"Position {position!r} must be a non-negative integer.",
            invariant="position_non_negative",
            node_id=node_id,
            position=position,
        )
