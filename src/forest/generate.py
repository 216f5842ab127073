"""Bulk tree generation for load and stress tests."""

import logging
from typing import Iterable, List, Optional

from forest.service import ForestService

logger = logging.getLogger(__name__)


async def generate_subtree(
    service: ForestService, root_ids: Iterable[Optional[int]], depth: int, fanout: int
) -> int:
    """Give every root ``fanout`` children, then repeat for ``depth`` levels.

    Children of parent ``p`` take positions ``0..fanout-1`` and labels
    ``"Line item p-1"`` to ``"Line item p-fanout"``. Each level is written in
    one unit of work. Returns the number of nodes created.
    """
    if depth < 0 or fanout < 0:
        raise ValueError(f"depth and fanout must be non-negative, got {depth} and {fanout}.")

    parents: List[Optional[int]] = list(root_ids)
    created = 0
    for level in range(1, depth + 1):
        if not parents or fanout == 0:
            break
        placements = [
            (parent_id, index - 1, f"Line item {parent_id or 0}-{index}")
            for parent_id in parents
            for index in range(1, fanout + 1)
        ]
        parents = await service.create_many(placements)
        created += len(parents)
        logger.debug("Generated level", extra={"level": level, "nodes": len(parents)})
    return created
