"""
Anomaly pipeline for persisted monitor events.

Each event is recorded, classified by the anomaly detector and, when flagged,
grouped with recent events before an incident is opened or extended.
"""

import logging
from typing import List, Optional, Sequence

from tracewarden.anomaly.repository import InMemoryEventRepository, event_repository
from tracewarden.anomaly.service import AnomalyDetector, AnomalyResult, anomaly_detector
from tracewarden.events.schemas import Event

from .grouping import EventCorrelator, event_correlator
from .schemas import Incident, ProviderHealth, ProviderStatus
from .service import IncidentService, incident_service

logger = logging.getLogger(__name__)

GROUPING_LOOKBACK_EVENTS = 100


class EventPipeline:
    def __init__(
        self,
        repository: Optional[InMemoryEventRepository] = None,
        detector: Optional[AnomalyDetector] = None,
        incidents: Optional[IncidentService] = None,
        correlator: Optional[EventCorrelator] = None,
        provider_statuses: Sequence[ProviderStatus] = (),
    ):
        self.repository = repository or event_repository
        self.detector = detector or anomaly_detector
        self.incidents = incidents or incident_service
        self.correlator = correlator or event_correlator
        self.provider_statuses: List[ProviderStatus] = list(provider_statuses)

    def update_provider_statuses(self, statuses: Sequence[ProviderStatus]):
        """
        Replace the known upstream provider health.

        Statuses are pushed by whatever polls provider status pages; events
        from a degraded or down provider are then grouped by provider.
        """
        self.provider_statuses = list(statuses)
        degraded = [
            s.provider
            for s in statuses
            if s.status in (ProviderHealth.DEGRADED, ProviderHealth.OUTAGE)
        ]
        if degraded:
            logger.info(f"Providers reporting problems: {', '.join(degraded)}")

    async def process_event(self, event: Event) -> AnomalyResult:
        """
        Record an event and act on the detector's verdict.

        Flagging and incident creation are best-effort; their failures are
        logged and the event stays recorded either way.
        """
        self.repository.record(event)
        result = await self.detector.analyze_event(event)
        if not result.should_diagnose:
            return result

        try:
            await self.detector.mark_for_diagnosis(event.id, result.reason or "anomaly")
        except Exception:
            logger.exception(f"Failed to flag event {event.id} for diagnosis")

        try:
            await self._open_or_join_incident(event)
        except Exception:
            logger.exception(f"Failed to create incident for event {event.id}")

        return result

    async def _open_or_join_incident(self, event: Event) -> Optional[Incident]:
        recent = self.repository.recent_events(event.project_id, limit=GROUPING_LOOKBACK_EVENTS)
        open_incidents = self.incidents.open_incidents(event.project_id)
        correlation = self.correlator.correlate(
            event, recent, open_incidents, self.provider_statuses
        )

        if correlation.existing_incident_id:
            incident = self.incidents.add_events(correlation.existing_incident_id, [event])
            if incident is not None:
                logger.info(
                    f"Event {event.id} joined incident {incident.id}: {correlation.reason}"
                )
                return incident

        return await self.incidents.create_incident(
            [event], correlation_group=correlation.correlation_group
        )


event_pipeline = EventPipeline()
