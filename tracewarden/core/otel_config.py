"""
Self-telemetry export for TraceWarden.

Metrics and log records about the engine itself (ingest volume, analysis
passes, issue churn) go to an OTLP collector over gRPC. This is separate from
the application traces TraceWarden ingests and never feeds back into them.
"""

import logging
import socket
from typing import List, Union

from opentelemetry import metrics
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.metrics import Meter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from tracewarden.core.config import settings

logger = logging.getLogger(__name__)

METER_NAME = "tracewarden"

# Providers installed by this process, flushed and shut down in reverse order
_providers: List[Union[MeterProvider, LoggerProvider]] = []


def build_resource() -> Resource:
    """Resource describing this TraceWarden instance and its retention caps."""
    hostname = settings.HOSTNAME or socket.gethostname()
    return Resource.create(
        {
            "service.name": METER_NAME,
            "service.version": settings.VERSION,
            "service.instance.id": hostname,
            "host.name": hostname,
            "deployment.environment": settings.ENVIRONMENT or "unknown",
            "tracewarden.span_retention_limit": settings.SPAN_RETENTION_LIMIT,
            "tracewarden.event_retention_limit": settings.EVENT_RETENTION_LIMIT,
        }
    )


def setup_otel_metrics(endpoint: str) -> Meter:
    """
    Install a global MeterProvider exporting to `endpoint`.

    Returns:
        The meter to hand to otel_metrics.init_meter
    """
    reader = PeriodicExportingMetricReader(
        exporter=OTLPMetricExporter(endpoint=endpoint, insecure=settings.OTEL_INSECURE),
        export_interval_millis=int(settings.OTEL_EXPORT_INTERVAL_SECONDS * 1000),
    )
    provider = MeterProvider(resource=build_resource(), metric_readers=[reader])
    metrics.set_meter_provider(provider)
    _providers.append(provider)

    logger.info(
        f"Exporting metrics to {endpoint} every {settings.OTEL_EXPORT_INTERVAL_SECONDS:g}s"
    )
    return provider.get_meter(METER_NAME, settings.VERSION)


def setup_otel_logs(endpoint: str) -> LoggingHandler:
    """Install a global LoggerProvider and return a handler for the loguru OTLP sink."""
    provider = LoggerProvider(resource=build_resource())
    provider.add_log_record_processor(
        BatchLogRecordProcessor(
            OTLPLogExporter(endpoint=endpoint, insecure=settings.OTEL_INSECURE)
        )
    )
    set_logger_provider(provider)
    _providers.append(provider)

    logger.info(f"Exporting log records to {endpoint}")
    return LoggingHandler(level=logging.NOTSET, logger_provider=provider)


def shutdown_otel() -> int:
    """
    Flush and shut down every provider installed by this process.

    A provider that fails to shut down is logged and the rest still run.

    Returns:
        Number of providers shut down cleanly
    """
    clean = 0
    while _providers:
        provider = _providers.pop()
        name = type(provider).__name__
        try:
            provider.shutdown()
            clean += 1
        except Exception as e:
            logger.error(f"Error shutting down {name}: {e}")
    if clean:
        logger.info(f"OpenTelemetry shutdown complete ({clean} provider(s))")
    return clean
