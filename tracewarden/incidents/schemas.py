"""
Schemas for incidents, event grouping and diagnosis hand-off.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from tracewarden.events.schemas import Event, MonitorRunState
from tracewarden.traces.models import Span


class IncidentStatus(str, Enum):
    OPEN = "open"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"


class IncidentSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Incident(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str
    events: List[str] = Field(default_factory=list)  # event ids
    correlation_group: Optional[str] = None
    status: IncidentStatus = IncidentStatus.OPEN
    severity: IncidentSeverity = IncidentSeverity.INFO
    diagnosis_text: Optional[str] = None
    diagnosis_fix: Optional[str] = None
    fix_prompt: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    resolved_at: Optional[datetime] = None


class ProviderHealth(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"
    UNKNOWN = "unknown"


class ProviderStatus(BaseModel):
    """Upstream platform health as polled from provider status pages."""

    provider: str
    status: ProviderHealth = ProviderHealth.UNKNOWN
    description: Optional[str] = None
    last_checked: datetime = Field(default_factory=_utcnow)


class CorrelationResult(BaseModel):
    should_correlate: bool = False
    correlation_group: Optional[str] = None
    existing_incident_id: Optional[str] = None
    reason: Optional[str] = None


class DiagnosisContext(BaseModel):
    """Everything handed to the external diagnoser for one incident."""

    incident: Incident
    events: List[Event]
    monitor: Optional[MonitorRunState] = None
    recent_history: List[Dict[str, Any]] = Field(default_factory=list)
    traces: List[Span] = Field(default_factory=list)


class DiagnosisResult(BaseModel):
    root_cause: str
    suggested_fix: Optional[str] = None
    fix_prompt: Optional[str] = None
    severity: Optional[IncidentSeverity] = None
