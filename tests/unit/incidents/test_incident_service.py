"""
Unit tests for IncidentService.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tracewarden.core.exceptions import IncidentCreationError
from tracewarden.events.schemas import Event, EventSeverity, EventType
from tracewarden.incidents.schemas import (
    DiagnosisResult,
    IncidentSeverity,
    IncidentStatus,
)
from tracewarden.incidents.service import IncidentService, calculate_severity
from tests.factories import make_span


def _event(severity=EventSeverity.MEDIUM, **kwargs):
    return Event(
        project_id=kwargs.pop("project_id", "proj"),
        monitor_id=kwargs.pop("monitor_id", "mon-1"),
        type=EventType.ERROR,
        source="monitor",
        message=kwargs.pop("message", "Connection refused"),
        severity=severity,
        **kwargs,
    )


@pytest.fixture
def trace_correlator():
    correlator = MagicMock()
    correlator.related_traces = AsyncMock(return_value=[make_span(trace_id="t1")])
    return correlator


@pytest.fixture
def diagnoser():
    diagnoser = MagicMock()
    diagnoser.diagnose = AsyncMock(
        return_value=DiagnosisResult(root_cause="DB pool exhausted", suggested_fix="Raise pool size")
    )
    return diagnoser


@pytest.fixture
def notifier():
    notifier = MagicMock()
    notifier.notify = AsyncMock()
    return notifier


@pytest.fixture
def service(trace_correlator, event_repository, diagnoser, notifier):
    return IncidentService(
        correlator=trace_correlator,
        repository=event_repository,
        diagnoser=diagnoser,
        notifier=notifier,
    )


class TestCalculateSeverity:
    @pytest.mark.parametrize(
        "severities,expected",
        [
            ([EventSeverity.LOW, EventSeverity.HIGH], IncidentSeverity.CRITICAL),
            ([EventSeverity.CRITICAL], IncidentSeverity.CRITICAL),
            ([EventSeverity.LOW, EventSeverity.MEDIUM], IncidentSeverity.WARNING),
            ([EventSeverity.LOW], IncidentSeverity.INFO),
        ],
    )
    def test_severity_from_worst_event(self, severities, expected):
        assert calculate_severity([_event(s) for s in severities]) == expected


class TestCreateIncident:
    @pytest.mark.asyncio
    async def test_empty_events_rejected(self, service):
        with pytest.raises(IncidentCreationError):
            await service.create_incident([])

    @pytest.mark.asyncio
    async def test_diagnosis_applied_with_traces_and_monitor(
        self, service, event_repository, trace_correlator, diagnoser, notifier
    ):
        history = _event(message="older failure")
        event = _event(severity=EventSeverity.HIGH)
        event_repository.record(history)
        event_repository.record(event)

        incident = await service.create_incident([event], correlation_group="g")

        assert incident.severity == IncidentSeverity.CRITICAL
        assert incident.status == IncidentStatus.INVESTIGATING
        assert incident.diagnosis_text == "DB pool exhausted"
        assert incident.diagnosis_fix == "Raise pool size"
        assert incident.correlation_group == "g"
        context = diagnoser.diagnose.call_args.args[0]
        assert [s.trace_id for s in context.traces] == ["t1"]
        assert context.monitor.total_checks == 2
        assert [h["message"] for h in context.recent_history] == ["older failure"]
        notifier.notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_diagnosis_failure_does_not_block_creation(self, service, diagnoser, notifier):
        diagnoser.diagnose.side_effect = RuntimeError("model unavailable")

        incident = await service.create_incident([_event()])

        assert incident.status == IncidentStatus.OPEN
        assert service.get_incident(incident.id) is not None
        notifier.notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_notifier_failure_is_logged(self, service, notifier):
        notifier.notify.side_effect = RuntimeError("webhook down")

        incident = await service.create_incident([_event()])

        assert service.get_incident(incident.id).id == incident.id

    @pytest.mark.asyncio
    async def test_without_diagnoser_incident_stays_open(self, event_repository, trace_correlator):
        service = IncidentService(correlator=trace_correlator, repository=event_repository)

        incident = await service.create_incident([_event()])

        assert incident.status == IncidentStatus.OPEN
        trace_correlator.related_traces.assert_not_called()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_resolve_and_list(self, service):
        first = await service.create_incident([_event()])
        second = await service.create_incident([_event(project_id="other")])

        resolved = service.resolve_incident(first.id)

        assert resolved.status == IncidentStatus.RESOLVED
        assert resolved.resolved_at is not None
        assert [i.id for i in service.open_incidents()] == [second.id]
        assert [i.id for i in service.list_incidents(project_id="proj")] == [first.id]
        assert service.resolve_incident("missing") is None

    @pytest.mark.asyncio
    async def test_add_events_escalates_severity(self, service):
        incident = await service.create_incident([_event(severity=EventSeverity.LOW)])
        extra = _event(severity=EventSeverity.CRITICAL)

        updated = service.add_events(incident.id, [extra])

        assert extra.id in updated.events
        assert updated.severity == IncidentSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_related_traces_for_unknown_incident(self, service):
        assert await service.related_traces("missing") is None

    @pytest.mark.asyncio
    async def test_related_traces_uses_recorded_events(
        self, service, event_repository, trace_correlator
    ):
        event = _event()
        event_repository.record(event)
        incident = await service.create_incident([event])
        trace_correlator.related_traces.reset_mock()

        spans = await service.related_traces(incident.id)

        assert [s.trace_id for s in spans] == ["t1"]
        passed_events = trace_correlator.related_traces.call_args.args[0]
        assert [e.id for e in passed_events] == [event.id]


class TestRetention:
    @pytest.mark.asyncio
    async def test_resolved_incidents_evicted_first(self, event_repository, trace_correlator):
        service = IncidentService(
            correlator=trace_correlator, repository=event_repository, max_incidents=2
        )
        oldest_open = await service.create_incident([_event(message="a")])
        resolved = await service.create_incident([_event(message="b")])
        service.resolve_incident(resolved.id)

        newest = await service.create_incident([_event(message="c")])

        assert service.get_incident(resolved.id) is None
        assert {i.id for i in service.list_incidents()} == {oldest_open.id, newest.id}

    @pytest.mark.asyncio
    async def test_oldest_open_incident_evicted_when_none_resolved(
        self, event_repository, trace_correlator
    ):
        service = IncidentService(
            correlator=trace_correlator, repository=event_repository, max_incidents=2
        )
        first = await service.create_incident([_event(message="a")])
        await service.create_incident([_event(message="b")])
        await service.create_incident([_event(message="c")])

        assert len(service.list_incidents()) == 2
        assert service.get_incident(first.id) is None
