"""
OpenTelemetry metrics for TraceWarden
Instruments for ingestion, analysis, schema drift, anomaly detection, incidents and HTTP
"""

import logging
from typing import Any, Dict, Optional

from opentelemetry.metrics import Meter

logger = logging.getLogger(__name__)

# Global meter instance (initialized in main.py)
_meter: Optional[Meter] = None

# Metrics dictionaries (initialized after meter is set)
INGESTION_METRICS: Dict[str, Any] = {}
ANALYSIS_METRICS: Dict[str, Any] = {}
SCHEMA_METRICS: Dict[str, Any] = {}
ANOMALY_METRICS: Dict[str, Any] = {}
INCIDENT_METRICS: Dict[str, Any] = {}
HTTP_METRICS: Dict[str, Any] = {}


def init_meter(meter: Meter):
    """
    Initialize OpenTelemetry meter and create all metric instruments

    Args:
        meter: OpenTelemetry Meter instance from MeterProvider

    Note:
        This should be called once during application startup
    """
    global _meter
    _meter = meter
    # .clear() + .update() keeps dict identity for modules that imported these at load time

    # ==================== INGESTION METRICS ====================
    INGESTION_METRICS.clear()
    INGESTION_METRICS.update(
        {
            "spans_ingested_total": meter.create_counter(
                name="tracewarden.ingestion.spans.total",
                description="Total number of spans accepted from trace exports",
                unit="1",
            ),
            "spans_rejected_total": meter.create_counter(
                name="tracewarden.ingestion.spans.rejected.total",
                description="Malformed spans skipped inside otherwise valid exports",
                unit="1",
            ),
            "payloads_rejected_total": meter.create_counter(
                name="tracewarden.ingestion.payloads.rejected.total",
                description="Trace exports rejected as unparsable",
                unit="1",
            ),
            "derived_events_total": meter.create_counter(
                name="tracewarden.ingestion.derived_events.total",
                description="Events synthesized from error and slow query spans",
                unit="1",
            ),
            "metrics_exports_total": meter.create_counter(
                name="tracewarden.ingestion.metrics_exports.total",
                description="OTLP metric exports acknowledged",
                unit="1",
            ),
        }
    )

    # ==================== ANALYSIS METRICS ====================
    ANALYSIS_METRICS.clear()
    ANALYSIS_METRICS.update(
        {
            "analysis_passes_total": meter.create_counter(
                name="tracewarden.analysis.passes.total",
                description="Total number of trace analysis passes",
                unit="1",
            ),
            "analysis_duration_seconds": meter.create_histogram(
                name="tracewarden.analysis.duration",
                description="Duration of a single trace analysis pass",
                unit="s",
            ),
            "analyzer_failures_total": meter.create_counter(
                name="tracewarden.analysis.analyzer.failures.total",
                description="Analyzer invocations that raised and were skipped",
                unit="1",
            ),
            "issues_opened_total": meter.create_counter(
                name="tracewarden.analysis.issues.opened.total",
                description="Issues created or reactivated",
                unit="1",
            ),
            "issues_resolved_total": meter.create_counter(
                name="tracewarden.analysis.issues.resolved.total",
                description="Issues transitioned to resolved",
                unit="1",
            ),
        }
    )

    # ==================== SCHEMA DRIFT METRICS ====================
    SCHEMA_METRICS.clear()
    SCHEMA_METRICS.update(
        {
            "schema_drift_total": meter.create_counter(
                name="tracewarden.schema.drift.total",
                description="Route responses that drifted from their baseline",
                unit="1",
            ),
            "schema_promotions_total": meter.create_counter(
                name="tracewarden.schema.promotions.total",
                description="Pending shapes auto-accepted as the new baseline",
                unit="1",
            ),
        }
    )

    # ==================== ANOMALY METRICS ====================
    ANOMALY_METRICS.clear()
    ANOMALY_METRICS.update(
        {
            "events_analyzed_total": meter.create_counter(
                name="tracewarden.anomaly.events.analyzed.total",
                description="Events evaluated by the anomaly detector",
                unit="1",
            ),
            "anomalies_total": meter.create_counter(
                name="tracewarden.anomaly.detected.total",
                description="Events classified as anomalies",
                unit="1",
            ),
        }
    )

    # ==================== INCIDENT METRICS ====================
    INCIDENT_METRICS.clear()
    INCIDENT_METRICS.update(
        {
            "incidents_created_total": meter.create_counter(
                name="tracewarden.incidents.created.total",
                description="Incidents opened",
                unit="1",
            ),
            "diagnosis_failures_total": meter.create_counter(
                name="tracewarden.incidents.diagnosis.failures.total",
                description="Diagnosis calls that failed",
                unit="1",
            ),
        }
    )

    # ==================== HTTP METRICS ====================
    HTTP_METRICS.clear()
    HTTP_METRICS.update(
        {
            "http_requests_total": meter.create_counter(
                name="tracewarden.http.requests.total",
                description="Total HTTP requests by method and status class",
                unit="1",
            ),
            "http_request_duration_seconds": meter.create_histogram(
                name="tracewarden.http.request.duration",
                description="HTTP request duration for latency tracking",
                unit="s",
            ),
        }
    )

    logger.info("OpenTelemetry metric instruments initialized")


def get_meter() -> Optional[Meter]:
    """Return the meter set by init_meter, if any."""
    return _meter
