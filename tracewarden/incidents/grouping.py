"""
Groups a new event with recent events and open incidents.

Rules are evaluated in order; the first that applies decides:
1. provider outage - the event's source is a provider currently degraded or down
2. same endpoint - another event on the same endpoint within 5 minutes that
   already belongs to an open incident
3. payment + checkout - a payment failure and a checkout endpoint error
   within 2 minutes of each other
4. multi-monitor burst - 3 or more distinct monitors failing within 2 minutes
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from tracewarden.events.schemas import Event, EventType

from .schemas import CorrelationResult, Incident, ProviderHealth, ProviderStatus

PROVIDER_SOURCES = {
    "vercel": "vercel",
    "supabase": "supabase",
    "stripe": "stripe",
    "github": "github",
}

PAYMENT_SOURCE = "stripe"
CHECKOUT_MARKERS = ("/checkout", "/payment", "/stripe")
FAILURE_TYPES = (EventType.ERROR, EventType.DOWN)

SAME_ENDPOINT_WINDOW = timedelta(minutes=5)
BURST_WINDOW = timedelta(minutes=2)
MULTI_FAILURE_PREFIX = "multi-failure-"

_URL_IN_MESSAGE = re.compile(r"https?://\S+")
_PATH_IN_MESSAGE = re.compile(r"/(api|checkout|webhook|auth)/\S*")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def extract_endpoint(event: Event) -> Optional[str]:
    raw = event.raw_data or {}
    if event.monitor_id and raw.get("url"):
        return str(raw["url"])

    url_match = _URL_IN_MESSAGE.search(event.message)
    if url_match:
        return url_match.group(0)

    path_match = _PATH_IN_MESSAGE.search(event.message)
    if path_match:
        return path_match.group(0)

    return None


def is_checkout_event(event: Event) -> bool:
    endpoint = extract_endpoint(event)
    return bool(endpoint) and any(marker in endpoint for marker in CHECKOUT_MARKERS)


def _incident_with_event(event_id: str, incidents: Sequence[Incident]) -> Optional[Incident]:
    for incident in incidents:
        if event_id in incident.events:
            return incident
    return None


class EventCorrelator:
    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self.clock = clock

    def correlate(
        self,
        new_event: Event,
        recent_events: Sequence[Event],
        open_incidents: Sequence[Incident],
        provider_statuses: Sequence[ProviderStatus] = (),
    ) -> CorrelationResult:
        outage = self._provider_outage(new_event, provider_statuses)
        if outage is not None:
            return CorrelationResult(
                should_correlate=True,
                correlation_group=f"provider-{outage.provider}",
                reason=f"{outage.provider} is experiencing {outage.status.value}",
            )

        same_endpoint = self._same_endpoint_event(new_event, recent_events)
        if same_endpoint is not None:
            incident = _incident_with_event(same_endpoint.id, open_incidents)
            if incident is not None:
                return CorrelationResult(
                    should_correlate=True,
                    correlation_group=incident.correlation_group
                    or f"endpoint-{extract_endpoint(new_event)}",
                    existing_incident_id=incident.id,
                    reason="Same endpoint affected within 5 minutes",
                )

        if new_event.source == PAYMENT_SOURCE or is_checkout_event(new_event):
            partner = self._payment_checkout_partner(new_event, recent_events)
            if partner is not None:
                incident = _incident_with_event(partner.id, open_incidents)
                return CorrelationResult(
                    should_correlate=True,
                    correlation_group=(incident.correlation_group if incident else None)
                    or "payment-checkout-failure",
                    existing_incident_id=incident.id if incident else None,
                    reason="Payment failure correlated with checkout endpoint error",
                )

        others = self._concurrent_monitor_failures(new_event, recent_events)
        other_monitors = {e.monitor_id or e.id for e in others}
        if len(other_monitors) >= 2:
            for incident in open_incidents:
                group = incident.correlation_group or ""
                if group.startswith(MULTI_FAILURE_PREFIX):
                    return CorrelationResult(
                        should_correlate=True,
                        correlation_group=group,
                        existing_incident_id=incident.id,
                        reason="Part of multi-monitor failure burst",
                    )
            return CorrelationResult(
                should_correlate=True,
                correlation_group=f"{MULTI_FAILURE_PREFIX}{int(self.clock().timestamp() * 1000)}",
                reason=f"{len(other_monitors) + 1} monitors failing simultaneously",
            )

        return CorrelationResult()

    def _provider_outage(
        self, event: Event, statuses: Sequence[ProviderStatus]
    ) -> Optional[ProviderStatus]:
        provider = PROVIDER_SOURCES.get(event.source)
        if provider is None:
            return None
        for status in statuses:
            if status.provider == provider and status.status in (
                ProviderHealth.DEGRADED,
                ProviderHealth.OUTAGE,
            ):
                return status
        return None

    def _same_endpoint_event(
        self, new_event: Event, recent_events: Sequence[Event]
    ) -> Optional[Event]:
        endpoint = extract_endpoint(new_event)
        if not endpoint:
            return None
        cutoff = self.clock() - SAME_ENDPOINT_WINDOW
        for event in recent_events:
            if event.id == new_event.id or _aware(event.created_at) < cutoff:
                continue
            if extract_endpoint(event) == endpoint:
                return event
        return None

    def _payment_checkout_partner(
        self, new_event: Event, recent_events: Sequence[Event]
    ) -> Optional[Event]:
        cutoff = self.clock() - BURST_WINDOW
        recent = [
            e for e in recent_events if e.id != new_event.id and _aware(e.created_at) >= cutoff
        ]

        if new_event.source == PAYMENT_SOURCE:
            for event in recent:
                if event.source != PAYMENT_SOURCE and event.type == EventType.ERROR and is_checkout_event(event):
                    return event
            return None

        if new_event.type == EventType.ERROR:
            for event in recent:
                if event.source == PAYMENT_SOURCE and event.type == EventType.ERROR:
                    return event
        return None

    def _concurrent_monitor_failures(
        self, new_event: Event, recent_events: Sequence[Event]
    ) -> List[Event]:
        if new_event.type not in FAILURE_TYPES:
            return []
        cutoff = self.clock() - BURST_WINDOW
        failures = []
        for event in recent_events:
            if event.id == new_event.id or _aware(event.created_at) < cutoff:
                continue
            if event.type not in FAILURE_TYPES:
                continue
            if event.monitor_id and event.monitor_id == new_event.monitor_id:
                continue
            failures.append(event)
        return failures


event_correlator = EventCorrelator()
