"""
Internal span representation produced by the ingestion normalizer.
"""

from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tracewarden.core.config import settings

# Closed scalar union for attribute values; anything else is dropped at ingestion
AttributeValue = Union[bool, int, float, str]


class SpanKind(str, Enum):
    UNSPECIFIED = "UNSPECIFIED"
    INTERNAL = "INTERNAL"
    SERVER = "SERVER"
    CLIENT = "CLIENT"
    PRODUCER = "PRODUCER"
    CONSUMER = "CONSUMER"


class StatusCode(str, Enum):
    UNSET = "UNSET"
    OK = "OK"
    ERROR = "ERROR"


class SpanEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    attributes: Dict[str, AttributeValue] = Field(default_factory=dict)


class Span(BaseModel):
    """One timed unit of work in a trace. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    trace_id: str
    span_id: str
    parent_span_id: Optional[str] = None
    project_id: str = Field(default_factory=lambda: settings.DEFAULT_PROJECT_ID)
    service_name: str = "unknown"
    operation_name: str = ""
    kind: SpanKind = SpanKind.UNSPECIFIED
    start_time: int  # epoch ms
    duration_ms: int = 0
    status_code: StatusCode = StatusCode.UNSET
    status_message: Optional[str] = None
    attributes: Dict[str, AttributeValue] = Field(default_factory=dict)
    events: List[SpanEvent] = Field(default_factory=list)

    @field_validator("duration_ms")
    @classmethod
    def clamp_duration(cls, value: int) -> int:
        return max(0, value)

    @property
    def is_root(self) -> bool:
        return not self.parent_span_id

    @property
    def is_error(self) -> bool:
        return self.status_code == StatusCode.ERROR

    @property
    def end_time(self) -> int:
        return self.start_time + self.duration_ms


class TraceSummary(BaseModel):
    """Root span plus aggregates, as listed by GET /traces."""

    trace_id: str
    project_id: str
    root_span: Optional[Span] = None
    span_count: int
    max_duration_ms: int
    has_error: bool
    start_time: int
