"""
Incident lifecycle: creation from flagged events, diagnosis hand-off,
notification and resolution.

Diagnosis and notification are external collaborators. Their failures are
logged and never undo or block incident creation.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Sequence

from tracewarden.anomaly.repository import InMemoryEventRepository, event_repository
from tracewarden.core.config import settings
from tracewarden.core.exceptions import IncidentCreationError
from tracewarden.core.otel_metrics import INCIDENT_METRICS
from tracewarden.events.schemas import Event, EventSeverity
from tracewarden.traces.models import Span

from .correlator import TraceCorrelator
from .schemas import (
    DiagnosisContext,
    DiagnosisResult,
    Incident,
    IncidentSeverity,
    IncidentStatus,
)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10


class Diagnoser(Protocol):
    async def diagnose(self, context: DiagnosisContext) -> DiagnosisResult: ...


class Notifier(Protocol):
    async def notify(self, incident: Incident) -> None: ...


def calculate_severity(events: Sequence[Event]) -> IncidentSeverity:
    severities = {event.severity for event in events}
    if EventSeverity.CRITICAL in severities or EventSeverity.HIGH in severities:
        return IncidentSeverity.CRITICAL
    if EventSeverity.MEDIUM in severities:
        return IncidentSeverity.WARNING
    return IncidentSeverity.INFO


class IncidentService:
    def __init__(
        self,
        correlator: Optional[TraceCorrelator] = None,
        repository: Optional[InMemoryEventRepository] = None,
        diagnoser: Optional[Diagnoser] = None,
        notifier: Optional[Notifier] = None,
        max_incidents: Optional[int] = None,
    ):
        self.correlator = correlator or TraceCorrelator()
        self.repository = repository or event_repository
        self.diagnoser = diagnoser
        self.notifier = notifier
        self.max_incidents = (
            settings.INCIDENT_RETENTION_LIMIT if max_incidents is None else max_incidents
        )
        self._incidents: Dict[str, Incident] = {}

    async def create_incident(
        self, events: Sequence[Event], correlation_group: Optional[str] = None
    ) -> Incident:
        """
        Open an incident for the events, then diagnose and notify.

        Raises:
            IncidentCreationError: no events were given
        """
        if not events:
            raise IncidentCreationError("Cannot create an incident without events")

        incident = Incident(
            project_id=events[0].project_id,
            events=[event.id for event in events],
            correlation_group=correlation_group,
            severity=calculate_severity(events),
        )
        self._incidents[incident.id] = incident
        self._evict()
        logger.info(f"Created incident {incident.id} for {len(events)} event(s)")

        if INCIDENT_METRICS:
            INCIDENT_METRICS["incidents_created_total"].add(
                1, {"severity": incident.severity.value}
            )

        if self.diagnoser is not None:
            try:
                await self._diagnose(incident, events)
            except Exception:
                logger.exception(f"Diagnosis failed for incident {incident.id}")
                if INCIDENT_METRICS:
                    INCIDENT_METRICS["diagnosis_failures_total"].add(1)

        await self._notify(incident)
        return incident.model_copy(deep=True)

    def _evict(self):
        """Drop the oldest resolved incidents, then the oldest open ones, down to the cap."""
        overflow = len(self._incidents) - self.max_incidents
        if overflow <= 0:
            return
        resolved = [
            incident_id
            for incident_id, incident in self._incidents.items()
            if incident.status == IncidentStatus.RESOLVED
        ]
        victims = resolved[:overflow]
        if len(victims) < overflow:
            remaining = [i for i in self._incidents if i not in victims]
            victims += remaining[: overflow - len(victims)]
        for incident_id in victims:
            del self._incidents[incident_id]
        logger.debug(f"Evicted {len(victims)} incident(s) over the retention limit")

    async def _diagnose(self, incident: Incident, events: Sequence[Event]):
        traces = await self.correlator.related_traces(events)
        context = DiagnosisContext(
            incident=incident.model_copy(deep=True),
            events=list(events),
            monitor=self.repository.monitor_state(events[0].monitor_id),
            recent_history=self._recent_history(events[0]),
            traces=traces,
        )
        diagnosis = await self.diagnoser.diagnose(context)

        incident.diagnosis_text = diagnosis.root_cause
        incident.diagnosis_fix = diagnosis.suggested_fix
        incident.fix_prompt = diagnosis.fix_prompt
        if diagnosis.severity is not None:
            incident.severity = diagnosis.severity
        incident.status = IncidentStatus.INVESTIGATING
        logger.info(
            f"Diagnosis completed for incident {incident.id} using {len(traces)} correlated span(s)"
        )

    def _recent_history(self, event: Event) -> List[Dict[str, str]]:
        history = []
        for past in self.repository.recent_events(event.project_id, limit=100):
            if past.id == event.id or past.monitor_id != event.monitor_id:
                continue
            history.append(
                {
                    "timestamp": past.created_at.isoformat(),
                    "status": past.type.value,
                    "message": past.message,
                }
            )
            if len(history) >= HISTORY_LIMIT:
                break
        return history

    async def _notify(self, incident: Incident):
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(incident.model_copy(deep=True))
        except Exception:
            logger.exception(f"Failed to send notifications for incident {incident.id}")

    def add_events(self, incident_id: str, events: Sequence[Event]) -> Optional[Incident]:
        """Attach correlated events to an existing incident."""
        incident = self._incidents.get(incident_id)
        if incident is None:
            return None
        for event in events:
            if event.id not in incident.events:
                incident.events.append(event.id)
        severity = calculate_severity(events)
        if severity == IncidentSeverity.CRITICAL:
            incident.severity = severity
        return incident.model_copy(deep=True)

    def resolve_incident(self, incident_id: str) -> Optional[Incident]:
        incident = self._incidents.get(incident_id)
        if incident is None:
            return None
        if incident.status != IncidentStatus.RESOLVED:
            incident.status = IncidentStatus.RESOLVED
            incident.resolved_at = datetime.now(timezone.utc)
            logger.info(f"Resolved incident {incident_id}")
        return incident.model_copy(deep=True)

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        incident = self._incidents.get(incident_id)
        return incident.model_copy(deep=True) if incident else None

    def list_incidents(
        self,
        project_id: Optional[str] = None,
        status: Optional[IncidentStatus] = None,
    ) -> List[Incident]:
        incidents = [
            incident.model_copy(deep=True)
            for incident in self._incidents.values()
            if (project_id is None or incident.project_id == project_id)
            and (status is None or incident.status == status)
        ]
        return sorted(incidents, key=lambda incident: incident.created_at, reverse=True)

    def open_incidents(self, project_id: Optional[str] = None) -> List[Incident]:
        return [
            incident
            for incident in self.list_incidents(project_id)
            if incident.status != IncidentStatus.RESOLVED
        ]

    async def related_traces(self, incident_id: str) -> Optional[List[Span]]:
        """Correlated spans for an incident; None if the incident is unknown."""
        incident = self._incidents.get(incident_id)
        if incident is None:
            return None
        events = [
            event
            for event in (self.repository.get_event(event_id) for event_id in incident.events)
            if event is not None
        ]
        return await self.correlator.related_traces(events)

    def clear(self):
        self._incidents.clear()


incident_service = IncidentService()
