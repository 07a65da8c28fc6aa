"""
Trace ingestion service.

Stores normalized spans, emits live request lines and derived events, and
hands touched traces to the analysis worker. Nothing here waits on analysis.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from tracewarden.core.config import settings
from tracewarden.core.exceptions import MalformedPayloadError
from tracewarden.core.otel_metrics import INGESTION_METRICS
from tracewarden.events.schemas import Event, EventSeverity, EventType
from tracewarden.ingestion.normalizer import normalize_payload
from tracewarden.ingestion.schemas import IngestResult
from tracewarden.traces.models import Span, SpanKind
from tracewarden.traces.store import SpanStore, span_store
from tracewarden.workers.analysis_worker import AnalysisWorker, analysis_worker

logger = logging.getLogger(__name__)


def _error_message(span: Span) -> Optional[str]:
    for event in span.events:
        if event.name == "exception":
            message = event.attributes.get("exception.message")
            if isinstance(message, str):
                return message
    return span.status_message


def format_request_line(span: Span) -> str:
    """One-line summary of an incoming request (SERVER span)."""
    attrs = span.attributes
    clock = datetime.fromtimestamp(span.start_time / 1000).strftime("%H:%M:%S")
    method = attrs.get("http.method") or attrs.get("http.request.method") or "???"
    route = (
        attrs.get("http.route")
        or attrs.get("http.target")
        or attrs.get("url.path")
        or span.operation_name
    )
    http_status = attrs.get("http.status_code") or attrs.get("http.response.status_code")
    is_error = span.is_error or (
        isinstance(http_status, int) and not isinstance(http_status, bool) and http_status >= 400
    )

    line = f"{clock} {'ERR' if is_error else 'OK '} {method} {route} {span.duration_ms:>5}ms"
    if http_status is not None:
        line += f" [{http_status}]"
    if is_error:
        message = _error_message(span)
        if message:
            line += f"  {message[:50]}{'...' if len(message) > 50 else ''}"
    return line


def build_derived_events(span: Span) -> List[Event]:
    """Events synthesized from a single span: trace errors and slow DB queries."""
    events = []

    if span.is_error:
        message = f"Trace error in {span.service_name}: {span.operation_name}"
        if span.status_message:
            message += f" - {span.status_message}"
        events.append(
            Event(
                project_id=span.project_id,
                type=EventType.TRACE_ERROR,
                source="otel",
                message=message,
                severity=EventSeverity.HIGH,
                raw_data={
                    "trace_id": span.trace_id,
                    "span_id": span.span_id,
                    "service_name": span.service_name,
                    "operation_name": span.operation_name,
                    "duration_ms": span.duration_ms,
                    "status_message": span.status_message,
                    "attributes": dict(span.attributes),
                },
            )
        )

    db_system = span.attributes.get("db.system")
    if db_system is not None and span.duration_ms > settings.DERIVED_SLOW_QUERY_THRESHOLD_MS:
        events.append(
            Event(
                project_id=span.project_id,
                type=EventType.SLOW_QUERY,
                source="otel",
                message=(
                    f"Slow {db_system} query in {span.service_name}: "
                    f"{span.operation_name} ({span.duration_ms}ms)"
                ),
                severity=EventSeverity.MEDIUM,
                raw_data={
                    "trace_id": span.trace_id,
                    "span_id": span.span_id,
                    "service_name": span.service_name,
                    "operation_name": span.operation_name,
                    "duration_ms": span.duration_ms,
                    "db_system": db_system,
                    "db_statement": span.attributes.get("db.statement"),
                    "attributes": dict(span.attributes),
                },
            )
        )

    return events


class TraceIngestionService:
    def __init__(
        self,
        store: Optional[SpanStore] = None,
        worker: Optional[AnalysisWorker] = None,
        live_log_enabled: Optional[bool] = None,
    ):
        self.store = store or span_store
        self.worker = worker or analysis_worker
        self.live_log_enabled = (
            settings.LIVE_LOG_ENABLED if live_log_enabled is None else live_log_enabled
        )

    async def ingest(
        self,
        payload: Union[bytes, str, Dict[str, Any]],
        project_id: Optional[str] = None,
    ) -> IngestResult:
        """
        Ingest one trace export delivery.

        Raises:
            MalformedPayloadError: the envelope could not be parsed; nothing was stored
        """
        project_id = project_id or settings.DEFAULT_PROJECT_ID

        try:
            batch = normalize_payload(payload, project_id)
        except MalformedPayloadError:
            if INGESTION_METRICS:
                INGESTION_METRICS["payloads_rejected_total"].add(1)
            raise

        self.store.append_batch(batch.spans)

        trace_ids: List[str] = []
        seen = set()
        derived: List[Event] = []
        for span in batch.spans:
            if span.trace_id not in seen:
                seen.add(span.trace_id)
                trace_ids.append(span.trace_id)

            request_logged = self.live_log_enabled and span.kind == SpanKind.SERVER
            if request_logged:
                logger.info(format_request_line(span))

            for event in build_derived_events(span):
                self.store.add_event(event)
                derived.append(event)
                if event.type == EventType.SLOW_QUERY or not request_logged:
                    logger.warning(event.message)

        for trace_id in trace_ids:
            self.worker.submit_trace(trace_id)
        for event in derived:
            self.worker.submit_event(event)

        if INGESTION_METRICS:
            attributes = {"project_id": project_id}
            INGESTION_METRICS["spans_ingested_total"].add(len(batch.spans), attributes)
            if batch.rejected:
                INGESTION_METRICS["spans_rejected_total"].add(batch.rejected, attributes)
            if derived:
                INGESTION_METRICS["derived_events_total"].add(len(derived), attributes)

        logger.debug(
            f"Ingested {len(batch.spans)} spans ({batch.rejected} rejected) "
            f"across {len(trace_ids)} traces for project {project_id}"
        )

        return IngestResult(
            project_id=project_id,
            accepted_spans=len(batch.spans),
            rejected_spans=batch.rejected,
            trace_ids=trace_ids,
            derived_events=len(derived),
        )


trace_ingestion_service = TraceIngestionService()
