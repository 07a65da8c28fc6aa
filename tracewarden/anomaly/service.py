"""
Anomaly detection for monitor error events.

An error event is anomalous if its fingerprint has never been seen for the
monitor (novelty), or if the monitor's recent error count is a multiple of
its longer-term baseline rate (spike).
"""

import logging
from typing import Optional

from pydantic import BaseModel

from tracewarden.core.config import settings
from tracewarden.core.otel_metrics import ANOMALY_METRICS
from tracewarden.events.schemas import Event, EventType

from .patterns import extract_error_pattern
from .repository import EventStatsRepository, event_repository

logger = logging.getLogger(__name__)


class AnomalyResult(BaseModel):
    is_anomaly: bool = False
    should_diagnose: bool = False
    reason: Optional[str] = None


class AnomalyDetector:
    def __init__(
        self,
        repository: Optional[EventStatsRepository] = None,
        spike_multiplier: Optional[float] = None,
        min_baseline_rate: Optional[float] = None,
    ):
        self.repository = repository or event_repository
        self.spike_multiplier = (
            settings.ANOMALY_SPIKE_MULTIPLIER if spike_multiplier is None else spike_multiplier
        )
        self.min_baseline_rate = (
            settings.ANOMALY_MIN_BASELINE_RATE if min_baseline_rate is None else min_baseline_rate
        )

    async def analyze_event(self, event: Event) -> AnomalyResult:
        """
        Classify an event. Only error events tied to a monitor can be anomalies.
        """
        if event.type != EventType.ERROR or not event.monitor_id:
            return AnomalyResult()

        result = await self._classify(event)

        if ANOMALY_METRICS:
            ANOMALY_METRICS["events_analyzed_total"].add(1)
            if result.is_anomaly:
                ANOMALY_METRICS["anomalies_total"].add(1)

        return result

    async def _classify(self, event: Event) -> AnomalyResult:
        pattern = extract_error_pattern(event.message)
        similar = await self.repository.get_similar_error_count(
            event.monitor_id, event.id, pattern
        )
        if similar == 0:
            logger.info(f"New error type detected for monitor {event.monitor_id}: {pattern}")
            return AnomalyResult(
                is_anomaly=True,
                should_diagnose=True,
                reason=f"New error type never seen before: {pattern}",
            )

        baseline_rate = await self.repository.get_baseline_error_rate(event.monitor_id)
        if baseline_rate < self.min_baseline_rate:
            return AnomalyResult()

        recent_count = await self.repository.get_recent_error_count(event.monitor_id)
        if recent_count >= baseline_rate * self.spike_multiplier:
            ratio = recent_count / baseline_rate
            reason = (
                f"Error rate {ratio:.1f}x baseline "
                f"(threshold {self.spike_multiplier:g}x)"
            )
            logger.info(f"Error rate spike detected for monitor {event.monitor_id}: {reason}")
            return AnomalyResult(is_anomaly=True, should_diagnose=True, reason=reason)

        return AnomalyResult()

    async def mark_for_diagnosis(self, event_id: str, reason: str):
        await self.repository.flag_event_for_diagnosis(event_id, reason)
        logger.info(f"Event {event_id} flagged for diagnosis: {reason}")


anomaly_detector = AnomalyDetector()
