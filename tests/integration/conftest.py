"""Live PostgreSQL fixtures; run with RUN_INTEGRATION_TESTS=1 and FOREST_DB_* set."""

import pytest
import pytest_asyncio

from dal.postgres import PostgresNodeStore, PostgresNodeStoreConfig
from forest.config import ForestSettings
from forest.service import ForestService


def pytest_collection_modifyitems(items):
    """Mark collected tests in this directory as integration tests."""
    for item in items:
        if "tests/integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest_asyncio.fixture
async def pg_service(monkeypatch):
    """Forest service over an emptied forest_nodes table."""
    monkeypatch.setenv("FOREST_TRACE_OPERATIONS", "false")
    monkeypatch.setenv("FOREST_METRICS_ENABLED", "false")
    store = PostgresNodeStore(PostgresNodeStoreConfig.from_env())
    pool = await store._get_pool()
    async with pool.acquire() as conn:
        await conn.execute("TRUNCATE forest_nodes RESTART IDENTITY")
    svc = ForestService(store=store, settings=ForestSettings(retry_max_attempts=5))
    yield svc
    await svc.close()
