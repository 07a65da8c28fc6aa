"""
Unit tests for TraceCorrelator.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from tracewarden.events.schemas import Event, EventType
from tracewarden.incidents.correlator import (
    TraceCorrelator,
    extract_path_hints,
    extract_trace_ids,
)
from tracewarden.traces.store import StoreSpanQuery
from tests.factories import BASE_TIME_MS, make_root_span, make_span

EVENT_TIME = datetime.fromtimestamp(BASE_TIME_MS / 1000, tz=timezone.utc)


def _event(raw_data=None, **kwargs):
    return Event(
        project_id=kwargs.pop("project_id", "default"),
        type=EventType.ERROR,
        source="monitor",
        message="failure",
        raw_data=raw_data,
        created_at=kwargs.pop("created_at", EVENT_TIME),
        **kwargs,
    )


class TestExtraction:
    def test_trace_ids_are_deduplicated(self):
        events = [_event({"trace_id": "t1"}), _event({"trace_id": "t1"}), _event({"trace_id": ""})]
        assert extract_trace_ids(events) == ["t1"]

    def test_path_hints_from_target_url_and_operation(self):
        events = [
            _event({"http.target": "/api/orders"}),
            _event({"url": "https://shop.example.com/checkout?x=1"}),
            _event({"url": "not a path", "operation_name": "POST /pay"}),
        ]
        assert extract_path_hints(events) == ["/api/orders", "/checkout", "POST /pay"]


class TestRelatedTraces:
    @pytest.mark.asyncio
    async def test_empty_events_return_empty(self):
        correlator = TraceCorrelator(span_query=AsyncMock())
        assert await correlator.related_traces([]) == []

    @pytest.mark.asyncio
    async def test_direct_trace_id_bypasses_window_search(self, span_store):
        span_store.append_batch(
            [
                make_root_span(trace_id="direct", start_time=BASE_TIME_MS - 3_600_000),
                make_root_span(trace_id="in-window", start_time=BASE_TIME_MS),
            ]
        )
        query = StoreSpanQuery(span_store)
        query.root_trace_ids_in_window = AsyncMock(return_value=["in-window"])
        correlator = TraceCorrelator(span_query=query)

        spans = await correlator.related_traces([_event({"trace_id": "direct"})])

        assert {s.trace_id for s in spans} == {"direct"}
        query.root_trace_ids_in_window.assert_not_called()

    @pytest.mark.asyncio
    async def test_window_search_narrowed_by_path_hints(self, span_store):
        span_store.append_batch(
            [
                make_root_span(trace_id="users", route="/users", start_time=BASE_TIME_MS),
                make_root_span(trace_id="orders", route="/orders", start_time=BASE_TIME_MS + 10),
                make_root_span(trace_id="old", route="/orders", start_time=BASE_TIME_MS - 600_000),
            ]
        )
        correlator = TraceCorrelator(span_query=StoreSpanQuery(span_store))

        spans = await correlator.related_traces([_event({"http.route": "/orders"})])

        assert {s.trace_id for s in spans} == {"orders"}

    @pytest.mark.asyncio
    async def test_unmatched_hints_fall_back_to_all_candidates(self, span_store):
        span_store.append_batch(
            [
                make_root_span(trace_id="a", route="/a", start_time=BASE_TIME_MS),
                make_root_span(trace_id="b", route="/b", start_time=BASE_TIME_MS + 5),
            ]
        )
        correlator = TraceCorrelator(span_query=StoreSpanQuery(span_store))

        spans = await correlator.related_traces([_event({"http.target": "/nowhere"})])

        assert {s.trace_id for s in spans} == {"a", "b"}

    @pytest.mark.asyncio
    async def test_other_projects_are_excluded(self, span_store):
        span_store.append(make_root_span(trace_id="x", project_id="other", start_time=BASE_TIME_MS))
        correlator = TraceCorrelator(span_query=StoreSpanQuery(span_store))

        assert await correlator.related_traces([_event()]) == []

    @pytest.mark.asyncio
    async def test_result_ordered_and_capped(self, span_store):
        span_store.append_batch(
            [
                make_span(trace_id="t", span_id=f"s{i}", start_time=BASE_TIME_MS + (10 - i))
                for i in range(10)
            ]
        )
        correlator = TraceCorrelator(span_query=StoreSpanQuery(span_store), max_spans=4)

        spans = await correlator.related_traces([_event({"trace_id": "t"})])

        assert len(spans) == 4
        assert [s.start_time for s in spans] == sorted(s.start_time for s in spans)
