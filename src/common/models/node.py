"""Node records shared by the node stores and the forest engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, model_validator


@dataclass(frozen=True)
class Node:
    """Stored node: identity, placement among its siblings and payload label."""

    id: int
    parent_id: Optional[int]
    position: int
    label: str


@dataclass(frozen=True)
class AnnotatedNode:
    """Node as seen from a traversal root.

    ``depth`` counts edges from the root, ``path`` holds the positions from just
    below the root down to this node and ``rank`` is the dense 1-based ordinal
    among siblings.
    """

    id: int
    parent_id: Optional[int]
    label: str
    position: int
    depth: int
    path: tuple[int, ...]
    rank: int


class NodeRecord(BaseModel):
    """Explicit-id node record accepted by bulk import."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int = Field(ge=0)
    parent_id: Optional[int] = None
    position: int = Field(ge=0)
    label: StrictStr

    @model_validator(mode="after")
    def _reject_self_parent(self) -> "NodeRecord":
        if self.parent_id is not None and self.parent_id == self.id:
            raise ValueError(f"node {self.id} cannot be its own parent")
        return self
