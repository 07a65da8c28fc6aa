"""
Unit tests for EventPipeline.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tracewarden.anomaly.service import AnomalyDetector, AnomalyResult
from tracewarden.events.schemas import Event, EventType
from tracewarden.incidents.grouping import EventCorrelator
from tracewarden.incidents.pipeline import EventPipeline
from tracewarden.incidents.schemas import IncidentStatus, ProviderHealth, ProviderStatus
from tracewarden.incidents.service import IncidentService


def _event(message="Connection refused", monitor_id="mon-1", **kwargs):
    return Event(
        project_id="proj",
        monitor_id=monitor_id,
        type=kwargs.pop("type", EventType.ERROR),
        source="monitor",
        message=message,
        **kwargs,
    )


@pytest.fixture
def incidents(event_repository):
    trace_correlator = MagicMock()
    trace_correlator.related_traces = AsyncMock(return_value=[])
    return IncidentService(correlator=trace_correlator, repository=event_repository)


@pytest.fixture
def pipeline(event_repository, incidents):
    return EventPipeline(
        repository=event_repository,
        detector=AnomalyDetector(repository=event_repository),
        incidents=incidents,
        correlator=EventCorrelator(),
    )


class TestProcessEvent:
    @pytest.mark.asyncio
    async def test_new_error_type_opens_incident(self, pipeline, event_repository, incidents):
        event = _event()

        result = await pipeline.process_event(event)

        assert result.is_anomaly
        assert event_repository.get_event(event.id).flagged_for_diagnosis
        opened = incidents.list_incidents()
        assert len(opened) == 1
        assert opened[0].events == [event.id]
        assert opened[0].status == IncidentStatus.OPEN

    @pytest.mark.asyncio
    async def test_repeat_error_is_not_anomalous(self, pipeline, incidents):
        await pipeline.process_event(_event("Timeout after 30s"))

        result = await pipeline.process_event(_event("Timeout after 45s"))

        assert not result.is_anomaly
        assert len(incidents.list_incidents()) == 1

    @pytest.mark.asyncio
    async def test_non_error_events_are_only_recorded(self, pipeline, event_repository, incidents):
        event = _event(type=EventType.UP)

        await pipeline.process_event(event)

        assert event_repository.get_event(event.id) is not None
        assert incidents.list_incidents() == []

    @pytest.mark.asyncio
    async def test_burst_across_monitors_joins_one_incident(self, pipeline, incidents):
        await pipeline.process_event(_event("Disk full", monitor_id="m1"))
        await pipeline.process_event(_event("Out of memory", monitor_id="m2"))
        await pipeline.process_event(_event("Segfault", monitor_id="m3"))
        await pipeline.process_event(_event("Kernel panic", monitor_id="m4"))

        opened = incidents.list_incidents()
        multi = [
            i for i in opened if (i.correlation_group or "").startswith("multi-failure-")
        ]
        assert len(opened) == 3
        assert len(multi) == 1
        assert len(multi[0].events) == 2

    @pytest.mark.asyncio
    async def test_flagging_failure_still_creates_incident(self, event_repository, incidents):
        detector = MagicMock()
        detector.analyze_event = AsyncMock(
            return_value=AnomalyResult(is_anomaly=True, should_diagnose=True, reason="spike")
        )
        detector.mark_for_diagnosis = AsyncMock(side_effect=RuntimeError("db down"))
        pipeline = EventPipeline(
            repository=event_repository, detector=detector, incidents=incidents
        )

        await pipeline.process_event(_event())

        assert len(incidents.list_incidents()) == 1

    @pytest.mark.asyncio
    async def test_incident_failure_keeps_event_recorded(self, event_repository):
        incidents = MagicMock()
        incidents.open_incidents = MagicMock(return_value=[])
        incidents.create_incident = AsyncMock(side_effect=RuntimeError("boom"))
        pipeline = EventPipeline(
            repository=event_repository,
            detector=AnomalyDetector(repository=event_repository),
            incidents=incidents,
        )
        event = _event()

        result = await pipeline.process_event(event)

        assert result.should_diagnose
        assert event_repository.get_event(event.id).flagged_for_diagnosis


class TestProviderStatuses:
    @pytest.mark.asyncio
    async def test_updated_outage_groups_provider_events(self, pipeline, incidents):
        pipeline.update_provider_statuses(
            [ProviderStatus(provider="vercel", status=ProviderHealth.OUTAGE)]
        )
        event = Event(
            project_id="proj",
            monitor_id="mon-1",
            type=EventType.ERROR,
            source="vercel",
            message="Deployment unreachable",
        )

        await pipeline.process_event(event)

        assert incidents.list_incidents()[0].correlation_group == "provider-vercel"

    def test_constructor_statuses_are_kept(self, event_repository):
        statuses = [ProviderStatus(provider="stripe", status=ProviderHealth.DEGRADED)]
        pipeline = EventPipeline(repository=event_repository, provider_statuses=statuses)
        assert pipeline.provider_statuses == statuses
