"""
Shared fixtures for integration tests.

The ASGI transport does not run the application lifespan, so the analysis
worker is never started here; tests call `analysis_worker.drain()` to run
queued analysis inline after a request.

All integration tests use async tests with @pytest.mark.asyncio and the
`client` fixture (httpx AsyncClient).
"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tracewarden.analysis.engine import analysis_engine
from tracewarden.anomaly.repository import event_repository
from tracewarden.incidents.pipeline import event_pipeline
from tracewarden.incidents.service import incident_service
from tracewarden.main import app
from tracewarden.schema_drift.tracker import schema_tracker
from tracewarden.traces.store import span_store
from tracewarden.workers.analysis_worker import analysis_worker


async def _reset_state():
    await analysis_worker.drain()
    span_store.clear()
    analysis_engine.reset()
    schema_tracker.clear()
    event_repository.clear()
    incident_service.clear()
    event_pipeline.update_provider_statuses([])


@pytest_asyncio.fixture(scope="function")
async def client():
    """AsyncClient bound to the app, with engine state reset around each test."""
    await _reset_state()
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    await _reset_state()
