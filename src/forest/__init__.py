"""Ordered forest engine: subtree reads and position-preserving edits."""

from forest.config import ForestSettings
from forest.generate import generate_subtree
from forest.mutator import PositionMutator
from forest.reader import SubtreeReader
from forest.service import ForestService

__all__ = [
    "ForestService",
    "ForestSettings",
    "PositionMutator",
    "SubtreeReader",
    "generate_subtree",
]
