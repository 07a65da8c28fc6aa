"""
Trace analysis: built-in rule analyzers plus the issue lifecycle tracker.
"""

from .engine import AnalysisEngine, analysis_engine
from .schemas import AnalysisSummary, Finding, Issue, IssueState, Severity

__all__ = [
    "AnalysisEngine",
    "analysis_engine",
    "AnalysisSummary",
    "Finding",
    "Issue",
    "IssueState",
    "Severity",
]
