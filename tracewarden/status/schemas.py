from typing import Dict

from pydantic import BaseModel, Field


class StatusSnapshot(BaseModel):
    """Read-only view of the engine for operators and tests."""

    uptime_seconds: float
    span_count: int
    trace_count: int
    analysis_passes: int
    active_issues: int
    resolved_issues: int
    issues_by_rule: Dict[str, int] = Field(default_factory=dict)
    trace_errors: int
    slow_queries: int
    schema_baselines: int
    pending_analysis: int
    open_incidents: int
