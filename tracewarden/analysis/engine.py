"""
Analysis engine - runs all analyzers over a trace and reconciles their
findings against the issue table.
"""

import hashlib
import logging
import re
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from tracewarden.core.config import settings
from tracewarden.core.otel_metrics import ANALYSIS_METRICS
from tracewarden.traces.models import Span

from .analyzers import DEFAULT_ANALYZERS, Analyzer
from .schemas import AnalysisPassResult, AnalysisSummary, Finding, Issue, IssueState

logger = logging.getLogger(__name__)

IssueKey = Tuple[str, str]  # (rule, fingerprint)

_COUNT_PATTERN = re.compile(r"\d+\s*times")
_DURATION_PATTERN = re.compile(r"\d+ms")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fingerprint_finding(finding: Finding) -> str:
    """First 16 hex chars of sha256 over rule and the finding's stable key."""
    key = finding.key
    if not key:
        key = _COUNT_PATTERN.sub("N times", finding.message)
        key = _DURATION_PATTERN.sub("Nms", key)
    return hashlib.sha256(f"{finding.rule}:{key}".encode("utf-8")).hexdigest()[:16]


def find_root_span(spans: List[Span]) -> Optional[Span]:
    """Earliest span without a resolvable parent in this span set."""
    span_ids = {s.span_id for s in spans}
    roots = [s for s in spans if not s.parent_span_id or s.parent_span_id not in span_ids]
    if not roots:
        return None
    return min(roots, key=lambda s: s.start_time)


def route_key(spans: List[Span]) -> str:
    """Route a trace belongs to, used to scope issue resolution."""
    root = find_root_span(spans)
    if root is None:
        return ""
    for attr in ("http.route", "http.target", "url.path"):
        value = root.attributes.get(attr)
        if isinstance(value, str) and value:
            return value
    return root.operation_name


class AnalysisEngine:
    """
    Runs analyzers per trace and tracks the resulting issues.

    Analyzers run outside the lock; only reconciliation against the issue
    table is serialized. An issue resolves after `resolve_after_missed_passes`
    consecutive passes over traces of one of its routes that do not re-find it.
    """

    def __init__(
        self,
        analyzers: Optional[Dict[str, Analyzer]] = None,
        resolve_after_missed_passes: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.analyzers = dict(DEFAULT_ANALYZERS if analyzers is None else analyzers)
        self.resolve_after_missed_passes = (
            settings.ISSUE_RESOLVE_AFTER_MISSED_PASSES
            if resolve_after_missed_passes is None
            else resolve_after_missed_passes
        )
        self.clock = clock
        self._issues: Dict[IssueKey, Issue] = {}
        self._rule_owners: Dict[str, str] = {}  # rule -> analyzer name
        self._lock = threading.Lock()
        self.passes = 0

    def run_analyzers(self, spans: List[Span]) -> Tuple[Dict[str, List[Finding]], List[str]]:
        """Run every analyzer; a failing analyzer is logged and skipped."""
        findings: Dict[str, List[Finding]] = {}
        failed: List[str] = []

        for name, analyzer in self.analyzers.items():
            try:
                findings[name] = list(analyzer(spans))
            except Exception:
                failed.append(name)
                logger.exception(f"Analyzer {name} failed; skipping it for this trace")
                if ANALYSIS_METRICS:
                    ANALYSIS_METRICS["analyzer_failures_total"].add(1, {"analyzer": name})

        return findings, failed

    def analyze_trace(self, spans: List[Span]) -> AnalysisPassResult:
        """Analyze one trace's spans and update the issue table."""
        if not spans:
            return AnalysisPassResult()

        started = time.perf_counter()
        trace_id = spans[0].trace_id
        scope = route_key(spans)

        findings, failed = self.run_analyzers(list(spans))

        with self._lock:
            result = self._reconcile(findings, failed, scope)
            self.passes += 1

        result.trace_id = trace_id
        result.failed_analyzers = failed

        for issue in result.new_issues + result.reactivated:
            suffix = f" -> {issue.suggestion}" if issue.suggestion else ""
            logger.warning(f"[{issue.rule}] {issue.message}{suffix}")
        for issue in result.resolved:
            logger.info(f"[{issue.rule}] Resolved: {issue.message[:60]}")

        if ANALYSIS_METRICS:
            ANALYSIS_METRICS["analysis_passes_total"].add(1)
            ANALYSIS_METRICS["analysis_duration_seconds"].record(
                time.perf_counter() - started
            )
            opened = len(result.new_issues) + len(result.reactivated)
            if opened:
                ANALYSIS_METRICS["issues_opened_total"].add(opened)
            if result.resolved:
                ANALYSIS_METRICS["issues_resolved_total"].add(len(result.resolved))

        return result

    def _reconcile(
        self,
        findings_by_analyzer: Dict[str, List[Finding]],
        failed: List[str],
        scope: str,
    ) -> AnalysisPassResult:
        now = self.clock()
        result = AnalysisPassResult(scope=scope)
        seen: Dict[IssueKey, Finding] = {}

        for name, findings in findings_by_analyzer.items():
            result.findings += len(findings)
            for finding in findings:
                self._rule_owners[finding.rule] = name
                seen[(finding.rule, fingerprint_finding(finding))] = finding

        for key, finding in seen.items():
            issue = self._issues.get(key)
            if issue is None:
                issue = Issue(
                    rule=finding.rule,
                    severity=finding.severity,
                    message=finding.message,
                    detail=finding.detail,
                    suggestion=finding.suggestion,
                    fingerprint=key[1],
                    first_seen=now,
                    last_seen=now,
                    scopes=[scope],
                )
                self._issues[key] = issue
                result.new_issues.append(issue.model_copy(deep=True))
                continue

            issue.last_seen = now
            issue.hit_count += 1
            issue.missed_passes = 0
            issue.message = finding.message
            issue.detail = finding.detail
            issue.severity = finding.severity
            if scope not in issue.scopes:
                issue.scopes.append(scope)
            if issue.state == IssueState.RESOLVED:
                issue.state = IssueState.ACTIVE
                issue.resolved_at = None
                result.reactivated.append(issue.model_copy(deep=True))

        for key, issue in self._issues.items():
            if key in seen or issue.state != IssueState.ACTIVE:
                continue
            if scope not in issue.scopes:
                continue
            # issues of an analyzer that raised this pass are not aged
            if self._rule_owners.get(issue.rule, issue.rule) in failed:
                continue
            issue.missed_passes += 1
            if issue.missed_passes >= self.resolve_after_missed_passes:
                issue.state = IssueState.RESOLVED
                issue.resolved_at = now
                result.resolved.append(issue.model_copy(deep=True))

        return result

    def get_issues(self, state: Optional[IssueState] = None) -> List[Issue]:
        with self._lock:
            issues = [issue.model_copy(deep=True) for issue in self._issues.values()]
        if state is not None:
            issues = [issue for issue in issues if issue.state == state]
        return sorted(issues, key=lambda issue: issue.first_seen)

    def get_summary(self) -> AnalysisSummary:
        summary = AnalysisSummary()
        with self._lock:
            for issue in self._issues.values():
                summary.total += 1
                if issue.state == IssueState.ACTIVE:
                    summary.active += 1
                else:
                    summary.resolved += 1
                summary.by_rule[issue.rule] = summary.by_rule.get(issue.rule, 0) + 1
        return summary

    @property
    def active_issue_count(self) -> int:
        with self._lock:
            return sum(1 for i in self._issues.values() if i.state == IssueState.ACTIVE)

    def reset(self):
        with self._lock:
            self._issues.clear()
            self._rule_owners.clear()
            self.passes = 0


analysis_engine = AnalysisEngine()
