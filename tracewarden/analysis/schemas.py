"""
Schemas for analyzer findings and tracked issues.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssueState(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


class Finding(BaseModel):
    """One analyzer result for one trace."""

    severity: Severity
    rule: str  # e.g., "n-plus-one"
    message: str
    detail: Optional[str] = None
    suggestion: Optional[str] = None
    key: Optional[str] = None  # stable identity: normalized statement, host, operation


class Issue(BaseModel):
    """A finding tracked across analysis passes."""

    rule: str
    severity: Severity
    message: str
    detail: Optional[str] = None
    suggestion: Optional[str] = None
    fingerprint: str
    first_seen: datetime
    last_seen: datetime
    state: IssueState = IssueState.ACTIVE
    hit_count: int = 1
    missed_passes: int = 0
    scopes: List[str] = Field(default_factory=list)
    resolved_at: Optional[datetime] = None


class AnalysisSummary(BaseModel):
    total: int = 0
    active: int = 0
    resolved: int = 0
    by_rule: Dict[str, int] = Field(default_factory=dict)


class AnalysisPassResult(BaseModel):
    """What changed in the issue table during one pass."""

    trace_id: Optional[str] = None
    scope: Optional[str] = None
    findings: int = 0
    new_issues: List[Issue] = Field(default_factory=list)
    reactivated: List[Issue] = Field(default_factory=list)
    resolved: List[Issue] = Field(default_factory=list)
    failed_analyzers: List[str] = Field(default_factory=list)
