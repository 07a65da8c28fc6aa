"""
Bounded in-memory span store.

The store is an append log (not a set): repeated deliveries of the same span
are kept, and the oldest spans are evicted once the retention cap is exceeded.
Mutation happens under a single lock; readers copy a snapshot under the same
lock and filter outside it.
"""

import logging
import threading
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence

from tracewarden.core.config import settings
from tracewarden.events.schemas import Event
from tracewarden.traces.models import Span, TraceSummary

logger = logging.getLogger(__name__)

PATH_ATTRIBUTES = ("http.target", "http.route", "url.path")


class SpanStore:
    def __init__(
        self,
        max_spans: Optional[int] = None,
        max_events: Optional[int] = None,
    ):
        self.max_spans = settings.SPAN_RETENTION_LIMIT if max_spans is None else max_spans
        self.max_events = settings.EVENT_RETENTION_LIMIT if max_events is None else max_events
        self._spans: List[Span] = []
        self._events: List[Event] = []
        self._lock = threading.Lock()
        self.total_appended = 0
        self.total_evicted = 0

    # ==================== WRITES ====================

    def append(self, span: Span) -> int:
        return self.append_batch([span])

    def append_batch(self, spans: Iterable[Span]) -> int:
        """
        Append spans then evict oldest-first down to the retention cap.

        Returns:
            Number of spans evicted by this call
        """
        batch = list(spans)
        with self._lock:
            self._spans.extend(batch)
            self.total_appended += len(batch)
            overflow = len(self._spans) - self.max_spans
            if overflow > 0:
                del self._spans[:overflow]
                self.total_evicted += overflow
            else:
                overflow = 0

        if overflow:
            logger.debug(f"Evicted {overflow} spans (retention cap {self.max_spans})")
        return overflow

    def add_event(self, event: Event):
        with self._lock:
            self._events.append(event)
            overflow = len(self._events) - self.max_events
            if overflow > 0:
                del self._events[:overflow]

    def clear(self):
        with self._lock:
            self._spans.clear()
            self._events.clear()
            self.total_appended = 0
            self.total_evicted = 0

    # ==================== READS ====================

    def _snapshot(self) -> List[Span]:
        with self._lock:
            return list(self._spans)

    def span_count(self) -> int:
        with self._lock:
            return len(self._spans)

    def spans_for_trace(self, trace_id: str) -> List[Span]:
        """All spans of a trace ordered by start time ascending."""
        spans = [s for s in self._snapshot() if s.trace_id == trace_id]
        spans.sort(key=lambda s: s.start_time)
        return spans

    def spans_for_traces(
        self, trace_ids: Sequence[str], limit: Optional[int] = None
    ) -> List[Span]:
        wanted = set(trace_ids)
        spans = [s for s in self._snapshot() if s.trace_id in wanted]
        spans.sort(key=lambda s: s.start_time)
        if limit is not None:
            spans = spans[:limit]
        return spans

    def recent_root_spans(
        self,
        project_id: str,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
        limit: int = 10,
    ) -> List[Span]:
        """
        Root spans of distinct traces in a project and time window.

        Returns:
            One root span per trace, most recent first, at most `limit`
        """
        by_trace: Dict[str, Span] = {}
        for span in self._snapshot():
            if not span.is_root or span.project_id != project_id:
                continue
            if start_ms is not None and span.start_time < start_ms:
                continue
            if end_ms is not None and span.start_time > end_ms:
                continue
            current = by_trace.get(span.trace_id)
            if current is None or span.start_time > current.start_time:
                by_trace[span.trace_id] = span

        roots = sorted(by_trace.values(), key=lambda s: s.start_time, reverse=True)
        return roots[:limit]

    def trace_ids_matching_paths(
        self, trace_ids: Sequence[str], hints: Sequence[str]
    ) -> List[str]:
        """
        Subset of trace_ids with a span whose operation name or path attribute
        equals one of the hints. Keeps the order of trace_ids.
        """
        wanted = set(trace_ids)
        hint_set = set(hints)
        matched = set()
        for span in self._snapshot():
            if span.trace_id not in wanted or span.trace_id in matched:
                continue
            if span.operation_name in hint_set:
                matched.add(span.trace_id)
                continue
            for attr in PATH_ATTRIBUTES:
                value = span.attributes.get(attr)
                if isinstance(value, str) and value in hint_set:
                    matched.add(span.trace_id)
                    break
        return [trace_id for trace_id in trace_ids if trace_id in matched]

    def trace_count(self) -> int:
        return len({s.trace_id for s in self._snapshot()})

    def recent_traces(
        self,
        project_id: Optional[str] = None,
        limit: int = 50,
        status: Optional[str] = None,
    ) -> List[TraceSummary]:
        """Trace summaries, most recent first; status is "error" or "ok"."""
        grouped: "OrderedDict[str, List[Span]]" = OrderedDict()
        for span in self._snapshot():
            if project_id is not None and span.project_id != project_id:
                continue
            grouped.setdefault(span.trace_id, []).append(span)

        summaries = []
        for trace_id, spans in grouped.items():
            root = next((s for s in spans if s.is_root), None)
            has_error = any(s.is_error for s in spans)
            if status == "error" and not has_error:
                continue
            if status == "ok" and has_error:
                continue
            summaries.append(
                TraceSummary(
                    trace_id=trace_id,
                    project_id=spans[0].project_id,
                    root_span=root,
                    span_count=len(spans),
                    max_duration_ms=max(s.duration_ms for s in spans),
                    has_error=has_error,
                    start_time=min(s.start_time for s in spans),
                )
            )

        summaries.sort(key=lambda t: t.start_time, reverse=True)
        return summaries[:limit]

    def events(self, event_type: Optional[str] = None) -> List[Event]:
        with self._lock:
            events = list(self._events)
        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        return events


class StoreSpanQuery:
    """Async span-query interface over a SpanStore, as used by the correlator."""

    def __init__(self, store: SpanStore):
        self.store = store

    async def spans_by_trace_ids(self, trace_ids: Sequence[str], limit: int) -> List[Span]:
        return self.store.spans_for_traces(trace_ids, limit=limit)

    async def root_trace_ids_in_window(
        self, project_id: str, start_ms: int, end_ms: int, limit: int
    ) -> List[str]:
        roots = self.store.recent_root_spans(project_id, start_ms, end_ms, limit)
        return [span.trace_id for span in roots]

    async def trace_ids_matching_paths(
        self, trace_ids: Sequence[str], hints: Sequence[str]
    ) -> List[str]:
        return self.store.trace_ids_matching_paths(trace_ids, hints)


span_store = SpanStore()
