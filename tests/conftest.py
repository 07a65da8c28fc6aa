"""
Pytest configuration and shared fixtures for TraceWarden tests.
"""

import os

# Set required environment variables BEFORE importing tracewarden modules
os.environ.setdefault("LOG_LEVEL", "INFO")
os.environ.setdefault("OTEL_ENABLED", "false")
os.environ.setdefault("LIVE_LOG_ENABLED", "false")

import pytest

from tracewarden.analysis.engine import AnalysisEngine
from tracewarden.anomaly.repository import InMemoryEventRepository
from tracewarden.schema_drift.tracker import SchemaTracker
from tracewarden.traces.store import SpanStore


@pytest.fixture
def span_store():
    """Fresh span store per test."""
    return SpanStore(max_spans=100, max_events=100)


@pytest.fixture
def engine():
    """Fresh analysis engine per test."""
    return AnalysisEngine()


@pytest.fixture
def schema_tracker():
    return SchemaTracker()


@pytest.fixture
def event_repository():
    return InMemoryEventRepository()
