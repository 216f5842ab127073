"""Data Abstraction Layer (DAL) for the ordered forest.

This package exposes the node store backends and the factory that selects
one of them from the environment.
"""

from dal.factory import get_node_store, reset_singletons

__all__ = [
    "get_node_store",
    "reset_singletons",
]
