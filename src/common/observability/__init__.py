"""Shared observability helpers."""

from common.observability.metrics import forest_metrics, is_metrics_enabled

__all__ = ["forest_metrics", "is_metrics_enabled"]
