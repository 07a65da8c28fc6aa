"""
Converts OTLP/JSON trace exports into internal Span objects.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from tracewarden.core.exceptions import MalformedPayloadError
from tracewarden.ingestion.schemas import OtlpSpan, OtlpTracePayload
from tracewarden.traces.models import AttributeValue, Span, SpanEvent, SpanKind, StatusCode

logger = logging.getLogger(__name__)

NANOS_PER_MILLI = 1_000_000

SPAN_KIND_MAP: Dict[int, SpanKind] = {
    0: SpanKind.UNSPECIFIED,
    1: SpanKind.INTERNAL,
    2: SpanKind.SERVER,
    3: SpanKind.CLIENT,
    4: SpanKind.PRODUCER,
    5: SpanKind.CONSUMER,
}

STATUS_CODE_MAP: Dict[int, StatusCode] = {
    0: StatusCode.UNSET,
    1: StatusCode.OK,
    2: StatusCode.ERROR,
}


@dataclass
class NormalizedBatch:
    spans: List[Span] = field(default_factory=list)
    rejected: int = 0


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None


def map_span_kind(raw_kind: Any) -> SpanKind:
    code = _as_int(raw_kind)
    return SPAN_KIND_MAP.get(code, SpanKind.UNSPECIFIED)


def map_status_code(raw_code: Any) -> StatusCode:
    code = _as_int(raw_code)
    return STATUS_CODE_MAP.get(code, StatusCode.UNSET)


def flatten_value(value: Any) -> Optional[AttributeValue]:
    """
    Flatten one typed OTLP AnyValue into a scalar.

    Returns None for unsupported kinds (arrayValue, kvlistValue, bytesValue)
    and for values whose payload does not match the declared kind.
    """
    if not isinstance(value, dict):
        return None

    if value.get("stringValue") is not None:
        string_value = value["stringValue"]
        return string_value if isinstance(string_value, str) else None

    if value.get("intValue") is not None:
        # int64 is a decimal string in OTLP/JSON, but plain numbers are common
        return _as_int(value["intValue"])

    if value.get("doubleValue") is not None:
        double_value = value["doubleValue"]
        if isinstance(double_value, bool):
            return None
        try:
            return float(double_value)
        except (TypeError, ValueError):
            return None

    if value.get("boolValue") is not None:
        bool_value = value["boolValue"]
        return bool_value if isinstance(bool_value, bool) else None

    return None


def flatten_attributes(raw_attributes: Any) -> Dict[str, AttributeValue]:
    """Flatten an OTLP KeyValue list; malformed or unsupported entries are dropped."""
    attributes: Dict[str, AttributeValue] = {}
    if not isinstance(raw_attributes, list):
        return attributes

    for entry in raw_attributes:
        if not isinstance(entry, dict):
            continue
        key = entry.get("key")
        if not isinstance(key, str) or not key:
            continue
        flattened = flatten_value(entry.get("value"))
        if flattened is not None:
            attributes[key] = flattened

    return attributes


def _normalize_events(raw_events: List[Any]) -> List[SpanEvent]:
    events = []
    for raw_event in raw_events:
        if not isinstance(raw_event, dict):
            continue
        events.append(
            SpanEvent(
                name=str(raw_event.get("name") or ""),
                attributes=flatten_attributes(raw_event.get("attributes")),
            )
        )
    return events


def normalize_span(raw_span: Any, service_name: str, project_id: str) -> Span:
    """
    Normalize one wire span.

    Raises:
        ValidationError: the span is missing ids or carries unparsable timestamps
    """
    wire = OtlpSpan.model_validate(raw_span)

    start_ms = wire.start_time_unix_nano // NANOS_PER_MILLI
    duration_ms = (wire.end_time_unix_nano - wire.start_time_unix_nano) // NANOS_PER_MILLI

    status_code = StatusCode.UNSET
    status_message = None
    if wire.status is not None:
        status_code = map_status_code(wire.status.code)
        status_message = wire.status.message or None

    return Span(
        trace_id=wire.trace_id,
        span_id=wire.span_id,
        parent_span_id=wire.parent_span_id or None,
        project_id=project_id,
        service_name=service_name,
        operation_name=wire.name,
        kind=map_span_kind(wire.kind),
        start_time=start_ms,
        duration_ms=max(0, duration_ms),
        status_code=status_code,
        status_message=status_message,
        attributes=flatten_attributes(wire.attributes),
        events=_normalize_events(wire.events),
    )


def parse_payload(payload: Union[bytes, str, Dict[str, Any]]) -> OtlpTracePayload:
    """
    Parse and validate the export envelope.

    Raises:
        MalformedPayloadError: body is not JSON or not a trace export envelope
    """
    if isinstance(payload, (bytes, bytearray, str)):
        try:
            payload = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedPayloadError(f"Trace export is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedPayloadError("Trace export must be a JSON object")

    try:
        return OtlpTracePayload.model_validate(payload)
    except ValidationError as e:
        raise MalformedPayloadError(
            f"Trace export envelope is malformed: {e.error_count()} error(s)"
        ) from e


def normalize_payload(
    payload: Union[bytes, str, Dict[str, Any]], project_id: str
) -> NormalizedBatch:
    """
    Normalize a whole trace export.

    The envelope is validated before any span is produced, so a malformed
    envelope yields no spans at all. Bad spans inside a valid envelope are
    skipped and counted.
    """
    envelope = parse_payload(payload)
    batch = NormalizedBatch()

    for resource_spans in envelope.resource_spans:
        resource_attributes = flatten_attributes(
            resource_spans.resource.attributes if resource_spans.resource else []
        )
        service_name = resource_attributes.get("service.name")
        if not isinstance(service_name, str) or not service_name:
            service_name = "unknown"

        for scope_spans in resource_spans.scope_spans:
            for raw_span in scope_spans.spans:
                try:
                    batch.spans.append(normalize_span(raw_span, service_name, project_id))
                except ValidationError as e:
                    batch.rejected += 1
                    logger.warning(
                        f"Skipping malformed span from {service_name}: {e.error_count()} error(s)"
                    )

    return batch
