"""
Resolves the traces most relevant to a set of incident events.

Direct trace references in event payloads always win. Otherwise recent root
traces in the project around the events' time window are used, narrowed by
path hints when any match.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Protocol, Sequence
from urllib.parse import urlparse

from tracewarden.core.config import settings
from tracewarden.events.schemas import Event
from tracewarden.traces.models import Span
from tracewarden.traces.store import StoreSpanQuery, span_store

logger = logging.getLogger(__name__)


class SpanQuery(Protocol):
    async def spans_by_trace_ids(self, trace_ids: Sequence[str], limit: int) -> List[Span]: ...

    async def root_trace_ids_in_window(
        self, project_id: str, start_ms: int, end_ms: int, limit: int
    ) -> List[str]: ...

    async def trace_ids_matching_paths(
        self, trace_ids: Sequence[str], hints: Sequence[str]
    ) -> List[str]: ...


def _raw(event: Event) -> Dict[str, Any]:
    return event.raw_data or {}


def extract_trace_ids(events: Sequence[Event]) -> List[str]:
    trace_ids: List[str] = []
    for event in events:
        trace_id = _raw(event).get("trace_id")
        if isinstance(trace_id, str) and trace_id and trace_id not in trace_ids:
            trace_ids.append(trace_id)
    return trace_ids


def _path_of(value: str) -> Optional[str]:
    if value.startswith("/"):
        return value
    try:
        parsed = urlparse(value)
    except ValueError:
        return None
    if parsed.scheme and parsed.netloc:
        return parsed.path or "/"
    return None


def extract_path_hints(events: Sequence[Event]) -> List[str]:
    """Paths and operation names mentioned in event payloads."""
    hints: List[str] = []
    for event in events:
        raw = _raw(event)
        candidate = raw.get("http.target") or raw.get("http.route") or raw.get("url")
        if isinstance(candidate, str):
            path = _path_of(candidate)
            if path and path not in hints:
                hints.append(path)
        operation = raw.get("operation_name")
        if isinstance(operation, str) and operation and operation not in hints:
            hints.append(operation)
    return hints


class TraceCorrelator:
    def __init__(
        self,
        span_query: Optional[SpanQuery] = None,
        window_padding: Optional[timedelta] = None,
        max_candidate_traces: Optional[int] = None,
        max_spans: Optional[int] = None,
    ):
        self.span_query = span_query or StoreSpanQuery(span_store)
        self.window_padding = window_padding or timedelta(
            seconds=settings.CORRELATION_WINDOW_PADDING_SECONDS
        )
        self.max_candidate_traces = (
            settings.CORRELATION_MAX_CANDIDATE_TRACES
            if max_candidate_traces is None
            else max_candidate_traces
        )
        self.max_spans = settings.CORRELATION_MAX_SPANS if max_spans is None else max_spans

    async def related_traces(self, events: Sequence[Event]) -> List[Span]:
        """
        Spans of the traces most likely related to the events, ordered by
        start time and capped. Returns an empty list when nothing is found.
        """
        if not events:
            return []

        direct_ids = extract_trace_ids(events)
        if direct_ids:
            return await self.span_query.spans_by_trace_ids(direct_ids, self.max_spans)

        padding_ms = int(self.window_padding.total_seconds() * 1000)
        timestamps = [event.created_at_ms for event in events]
        start_ms = min(timestamps) - padding_ms
        end_ms = max(timestamps) + padding_ms
        project_id = events[0].project_id

        candidates = await self.span_query.root_trace_ids_in_window(
            project_id, start_ms, end_ms, self.max_candidate_traces
        )
        if not candidates:
            logger.debug(f"No candidate traces for project {project_id} in incident window")
            return []

        trace_ids = candidates
        hints = extract_path_hints(events)
        if hints:
            matching = await self.span_query.trace_ids_matching_paths(candidates, hints)
            if matching:
                trace_ids = matching

        return await self.span_query.spans_by_trace_ids(trace_ids, self.max_spans)
