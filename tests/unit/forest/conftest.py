"""Forest engine fixtures; engine behavior runs against every embedded backend."""

import pytest
import pytest_asyncio

from dal.memory import MemoryNodeStore
from dal.sqlite import SqliteNodeStore, SqliteNodeStoreConfig
from forest.config import ForestSettings
from forest.service import ForestService
from tests._support.forest_fixtures import BALANCE_SHEET

TEST_SETTINGS = ForestSettings(retry_base_delay=0.0, retry_max_delay=0.0)


def make_store(backend: str):
    if backend == "memory":
        return MemoryNodeStore()
    return SqliteNodeStore(SqliteNodeStoreConfig(path=":memory:"))


@pytest.fixture(autouse=True)
def _quiet_telemetry(monkeypatch):
    """Keep OTEL emission off unless a test opts in."""
    monkeypatch.setenv("FOREST_TRACE_OPERATIONS", "false")
    monkeypatch.setenv("FOREST_METRICS_ENABLED", "false")


@pytest.fixture(params=["memory", "sqlite"])
def backend(request) -> str:
    return request.param


@pytest_asyncio.fixture
async def service(backend):
    """Empty forest service over a fresh store."""
    svc = ForestService(store=make_store(backend), settings=TEST_SETTINGS)
    yield svc
    await svc.close()


@pytest_asyncio.fixture
async def balance_sheet(service):
    """Service preloaded with the balance-sheet tree (ids 0-13)."""
    await service.import_nodes(BALANCE_SHEET)
    return service
