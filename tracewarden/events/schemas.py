"""
Schemas for monitoring and error events.

Events are persisted by the surrounding product; the engine consumes them for
anomaly classification and incident correlation, and synthesizes its own
derived events (trace_error, slow_query) at ingestion.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    ERROR = "error"
    SLOW = "slow"
    DOWN = "down"
    UP = "up"
    TRACE_ERROR = "trace_error"
    SLOW_QUERY = "slow_query"


class EventSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(BaseModel):
    """A persisted monitoring/error event."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str
    monitor_id: Optional[str] = None
    type: EventType
    source: str
    message: str
    raw_data: Optional[Dict[str, Any]] = None
    severity: EventSeverity = EventSeverity.MEDIUM
    created_at: datetime = Field(default_factory=_utcnow)
    flagged_for_diagnosis: bool = False

    @property
    def created_at_ms(self) -> int:
        created_at = self.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return int(created_at.timestamp() * 1000)


class MonitorStatus(str, Enum):
    UP = "up"
    DOWN = "down"
    UNKNOWN = "unknown"


class MonitorRunState(BaseModel):
    """Rolling per-monitor state owned by the monitor checker."""

    monitor_id: str
    status: MonitorStatus = MonitorStatus.UNKNOWN
    avg_response_time_ms: Optional[float] = None
    total_checks: int = 0
    error_count: int = 0


class EventSubmission(BaseModel):
    """Request body for submitting an event to the anomaly pipeline."""

    id: Optional[str] = None
    project_id: Optional[str] = None
    monitor_id: Optional[str] = None
    type: EventType
    source: str = "monitor"
    message: str
    raw_data: Optional[Dict[str, Any]] = None
    severity: EventSeverity = EventSeverity.MEDIUM
    created_at: Optional[datetime] = None
