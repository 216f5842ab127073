"""Fixture data and assertion helpers shared by forest tests."""

from typing import Dict, List, Optional, Tuple

BALANCE_SHEET: List[Dict[str, object]] = [
    {"id": 0, "parent_id": None, "position": 0, "label": "Balance sheet"},
    {"id": 1, "parent_id": 0, "position": 0, "label": "Assets"},
    {"id": 2, "parent_id": 1, "position": 0, "label": "Current assets"},
    {"id": 3, "parent_id": 2, "position": 0, "label": "Accounts receivable"},
    {"id": 4, "parent_id": 2, "position": 1, "label": "Cash and cash equivalents"},
    {"id": 5, "parent_id": 2, "position": 2, "label": "Inventories"},
    {"id": 6, "parent_id": 1, "position": 1, "label": "Non-current assets"},
    {"id": 7, "parent_id": 6, "position": 0, "label": "Property, plant and equipment"},
    {"id": 8, "parent_id": 6, "position": 1, "label": "Financial assets"},
    {"id": 9, "parent_id": 0, "position": 1, "label": "Liabilities"},
    {"id": 10, "parent_id": 9, "position": 0, "label": "Accounts payable"},
    {"id": 11, "parent_id": 9, "position": 1, "label": "Provisions"},
    {"id": 12, "parent_id": 9, "position": 2, "label": "Financial liabilities"},
    {"id": 13, "parent_id": 0, "position": 2, "label": "Equity"},
]


async def snapshot(service) -> List[Tuple[int, Optional[int], int, str]]:
    """Every stored node as (id, parent_id, position, label), ordered by id."""
    return sorted(
        (node.id, node.parent_id, node.position, node.label)
        for node in await service.read_forest()
    )


async def assert_invariants(service) -> None:
    """Check self-parenting, positions, sibling uniqueness, parents and reachability.

    Roots are exempt from position uniqueness.
    """
    nodes = await snapshot(service)
    ids = {node_id for node_id, _, _, _ in nodes}
    seen = set()
    for node_id, parent_id, position, _ in nodes:
        assert parent_id != node_id
        assert position >= 0
        assert parent_id is None or parent_id in ids
        if parent_id is not None:
            assert (parent_id, position) not in seen
            seen.add((parent_id, position))
    # read_forest only reaches nodes hanging off a root
    assert len(nodes) == await service.count()


def child_positions(annotated, parent_id: Optional[int]) -> List[Tuple[int, int]]:
    """(id, position) pairs of a parent's children in read order."""
    return [(node.id, node.position) for node in annotated if node.parent_id == parent_id]
