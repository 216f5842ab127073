"""Unit test environment helpers."""

import pytest


@pytest.fixture(autouse=True)
def _minimal_env(monkeypatch):
    """Set minimal env defaults for unit tests without external deps."""
    monkeypatch.delenv("NODE_STORE_PROVIDER", raising=False)
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_METRICS_ENDPOINT", raising=False)
    monkeypatch.setenv("FOREST_SQLITE_PATH", ":memory:")
    yield


@pytest.fixture(autouse=True)
def _reset_node_store_singleton():
    """Reset the DAL factory singleton after each test."""
    from dal.factory import reset_singletons

    reset_singletons()
    yield
    reset_singletons()
