"""
Status snapshot assembled from the engine's components.
"""

import logging
import time
from typing import Optional

from tracewarden.analysis.engine import AnalysisEngine, analysis_engine
from tracewarden.events.schemas import EventType
from tracewarden.incidents.service import IncidentService, incident_service
from tracewarden.schema_drift.tracker import SchemaTracker, schema_tracker
from tracewarden.traces.store import SpanStore, span_store
from tracewarden.workers.analysis_worker import AnalysisWorker, analysis_worker

from .schemas import StatusSnapshot

logger = logging.getLogger(__name__)


class StatusService:
    def __init__(
        self,
        store: Optional[SpanStore] = None,
        engine: Optional[AnalysisEngine] = None,
        tracker: Optional[SchemaTracker] = None,
        worker: Optional[AnalysisWorker] = None,
        incidents: Optional[IncidentService] = None,
    ):
        self.store = store or span_store
        self.engine = engine or analysis_engine
        self.tracker = tracker or schema_tracker
        self.worker = worker or analysis_worker
        self.incidents = incidents or incident_service
        self.started_at = time.monotonic()

    def snapshot(self) -> StatusSnapshot:
        summary = self.engine.get_summary()
        return StatusSnapshot(
            uptime_seconds=round(time.monotonic() - self.started_at, 3),
            span_count=self.store.span_count(),
            trace_count=self.store.trace_count(),
            analysis_passes=self.engine.passes,
            active_issues=summary.active,
            resolved_issues=summary.resolved,
            issues_by_rule=summary.by_rule,
            trace_errors=len(self.store.events(EventType.TRACE_ERROR)),
            slow_queries=len(self.store.events(EventType.SLOW_QUERY)),
            schema_baselines=self.tracker.baseline_count(),
            pending_analysis=self.worker.pending,
            open_incidents=len(self.incidents.open_incidents()),
        )

    def log_snapshot(self):
        """Periodic status line; driven by the application ticker."""
        status = self.snapshot()
        logger.info(
            f"Status: {status.span_count} spans / {status.trace_count} traces, "
            f"{status.active_issues} active issues ({status.resolved_issues} resolved), "
            f"{status.schema_baselines} schema baselines, "
            f"{status.pending_analysis} pending analysis"
        )


status_service = StatusService()
