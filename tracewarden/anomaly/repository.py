"""
Event statistics used by the anomaly detector.

The surrounding product owns event persistence; the detector only needs the
narrow query surface below. InMemoryEventRepository implements it over a
bounded event log for single-process deployments and tests.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol

from tracewarden.core.config import settings
from tracewarden.events.schemas import Event, EventType, MonitorRunState, MonitorStatus

from .patterns import extract_error_pattern

logger = logging.getLogger(__name__)

FAILURE_TYPES = (EventType.ERROR, EventType.DOWN)


class EventStatsRepository(Protocol):
    async def get_similar_error_count(
        self, monitor_id: str, exclude_event_id: str, pattern: str
    ) -> int: ...

    async def get_recent_error_count(self, monitor_id: str) -> int: ...

    async def get_baseline_error_rate(self, monitor_id: str) -> float: ...

    async def flag_event_for_diagnosis(self, event_id: str, reason: str) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class InMemoryEventRepository:
    """Bounded event log answering the detector's statistics queries."""

    def __init__(
        self,
        max_events: Optional[int] = None,
        recent_window: Optional[timedelta] = None,
        baseline_window: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.max_events = settings.EVENT_RETENTION_LIMIT if max_events is None else max_events
        self.recent_window = recent_window or timedelta(
            minutes=settings.ANOMALY_RECENT_WINDOW_MINUTES
        )
        self.baseline_window = baseline_window or timedelta(
            days=settings.ANOMALY_BASELINE_WINDOW_DAYS
        )
        self.clock = clock
        self._events: List[Event] = []
        self._flags: Dict[str, str] = {}
        self._monitors: Dict[str, MonitorRunState] = {}
        self._lock = threading.Lock()

    def record(self, event: Event):
        with self._lock:
            self._events.append(event)
            overflow = len(self._events) - self.max_events
            if overflow > 0:
                for evicted in self._events[:overflow]:
                    self._flags.pop(evicted.id, None)
                del self._events[:overflow]
            if event.monitor_id:
                self._update_monitor(event)

    def _update_monitor(self, event: Event):
        state = self._monitors.setdefault(
            event.monitor_id, MonitorRunState(monitor_id=event.monitor_id)
        )
        state.total_checks += 1
        if event.type in FAILURE_TYPES:
            state.error_count += 1
            state.status = MonitorStatus.DOWN
        elif event.type == EventType.UP:
            state.status = MonitorStatus.UP
        response_time = (event.raw_data or {}).get("response_time_ms")
        if isinstance(response_time, (int, float)) and not isinstance(response_time, bool):
            previous = state.avg_response_time_ms
            state.avg_response_time_ms = (
                float(response_time)
                if previous is None
                else previous + (response_time - previous) / state.total_checks
            )

    def monitor_state(self, monitor_id: Optional[str]) -> Optional[MonitorRunState]:
        if not monitor_id:
            return None
        with self._lock:
            state = self._monitors.get(monitor_id)
            return state.model_copy() if state else None

    def get_event(self, event_id: str) -> Optional[Event]:
        with self._lock:
            for event in self._events:
                if event.id == event_id:
                    return event
        return None

    def recent_events(self, project_id: Optional[str] = None, limit: int = 100) -> List[Event]:
        with self._lock:
            events = list(self._events)
        if project_id is not None:
            events = [e for e in events if e.project_id == project_id]
        return events[-limit:][::-1]

    def _failures(self, monitor_id: str) -> List[Event]:
        with self._lock:
            return [
                e
                for e in self._events
                if e.monitor_id == monitor_id and e.type in FAILURE_TYPES
            ]

    async def get_similar_error_count(
        self, monitor_id: str, exclude_event_id: str, pattern: str
    ) -> int:
        cutoff = self.clock() - self.baseline_window
        return sum(
            1
            for e in self._failures(monitor_id)
            if e.id != exclude_event_id
            and _aware(e.created_at) > cutoff
            and extract_error_pattern(e.message) == pattern
        )

    async def get_recent_error_count(self, monitor_id: str) -> int:
        cutoff = self.clock() - self.recent_window
        return sum(1 for e in self._failures(monitor_id) if _aware(e.created_at) > cutoff)

    async def get_baseline_error_rate(self, monitor_id: str) -> float:
        """Errors per hour between the baseline window start and the recent window."""
        now = self.clock()
        window_start = now - self.baseline_window
        window_end = now - self.recent_window
        timestamps = [
            _aware(e.created_at)
            for e in self._failures(monitor_id)
            if window_start < _aware(e.created_at) < window_end
        ]
        if not timestamps:
            return 0.0
        span_hours = (now - min(timestamps)).total_seconds() / 3600
        if span_hours <= 0:
            return 0.0
        return len(timestamps) / span_hours

    async def flag_event_for_diagnosis(self, event_id: str, reason: str) -> None:
        with self._lock:
            for index, event in enumerate(self._events):
                if event.id == event_id:
                    self._events[index] = event.model_copy(
                        update={"flagged_for_diagnosis": True}
                    )
                    self._flags[event_id] = reason
                    return
        logger.warning(f"Event {event_id} is no longer retained; diagnosis flag dropped")

    def diagnosis_reason(self, event_id: str) -> Optional[str]:
        with self._lock:
            return self._flags.get(event_id)

    def clear(self):
        with self._lock:
            self._events.clear()
            self._flags.clear()
            self._monitors.clear()


event_repository = InMemoryEventRepository()
