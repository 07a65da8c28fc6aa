"""
OTLP/JSON trace export envelope.

Only the envelope structure is validated as a whole; individual spans stay
raw dicts here and are validated one at a time by the normalizer so a single
bad span cannot reject its siblings.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OtlpResource(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    attributes: List[Any] = Field(default_factory=list)


class OtlpScopeSpans(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    spans: List[Any] = Field(default_factory=list)


class OtlpResourceSpans(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    resource: Optional[OtlpResource] = None
    scope_spans: List[OtlpScopeSpans] = Field(default_factory=list, alias="scopeSpans")


class OtlpTracePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    resource_spans: List[OtlpResourceSpans] = Field(
        default_factory=list, alias="resourceSpans"
    )


class OtlpStatus(BaseModel):
    code: Optional[Any] = None
    message: Optional[str] = None


class OtlpSpan(BaseModel):
    """A single wire span. Validation failure skips just this span."""

    model_config = ConfigDict(populate_by_name=True)

    trace_id: str = Field(alias="traceId", min_length=1)
    span_id: str = Field(alias="spanId", min_length=1)
    parent_span_id: Optional[str] = Field(default=None, alias="parentSpanId")
    name: str = ""
    kind: Optional[Any] = None
    start_time_unix_nano: int = Field(alias="startTimeUnixNano")
    end_time_unix_nano: int = Field(alias="endTimeUnixNano")
    status: Optional[OtlpStatus] = None
    attributes: List[Any] = Field(default_factory=list)
    events: List[Any] = Field(default_factory=list)

    @field_validator("start_time_unix_nano", "end_time_unix_nano", mode="before")
    @classmethod
    def parse_nanos(cls, value: Union[str, int]) -> int:
        # Wire format is a decimal string; some exporters send a JSON number
        if isinstance(value, bool):
            raise ValueError("timestamp must be a decimal string or integer")
        if isinstance(value, float):
            return int(value)
        return int(str(value).strip())


class IngestResult(BaseModel):
    """Outcome of one trace export delivery."""

    project_id: str
    accepted_spans: int = 0
    rejected_spans: int = 0
    trace_ids: List[str] = Field(default_factory=list)
    derived_events: int = 0

    def to_otlp_response(self) -> Dict[str, Any]:
        partial_success: Dict[str, Any] = {}
        if self.rejected_spans:
            partial_success["rejectedSpans"] = str(self.rejected_spans)
            partial_success["errorMessage"] = (
                f"{self.rejected_spans} malformed span(s) skipped"
            )
        return {"partialSuccess": partial_success}
