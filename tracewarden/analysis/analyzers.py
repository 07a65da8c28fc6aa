"""
Built-in trace analyzers.

Each rule function takes the spans of a single trace and returns a list of
Finding. Rules are pure: they never mutate the spans or any shared state and
give the same findings for the same input.
"""

import re
from typing import Callable, Dict, List, Optional
from urllib.parse import urlparse

from tracewarden.core.config import settings
from tracewarden.traces.models import Span, SpanKind, StatusCode

from .schemas import Finding, Severity

Analyzer = Callable[[List[Span]], List[Finding]]

_STRING_LITERAL = re.compile(r"'[^']*'")
_NUMERIC_LITERAL = re.compile(r"\b\d+\b")
_WHITESPACE = re.compile(r"\s+")


# ========== Helpers ==========


def normalize_query(statement: str) -> str:
    """Replace literal values with ? and collapse whitespace."""
    normalized = _STRING_LITERAL.sub("?", statement)
    normalized = _NUMERIC_LITERAL.sub("?", normalized)
    return _WHITESPACE.sub(" ", normalized).strip()


def truncate(text: str, max_length: int) -> str:
    return text[:max_length] + "..." if len(text) > max_length else text


def is_db_span(span: Span) -> bool:
    return "db.system" in span.attributes


def is_http_client_span(span: Span) -> bool:
    return span.kind == SpanKind.CLIENT and (
        "http.url" in span.attributes or "url.full" in span.attributes
    )


def get_parent(span: Span, spans: List[Span]) -> Optional[Span]:
    """Parent span within the trace, or None for roots and orphans."""
    if not span.parent_span_id:
        return None
    for candidate in spans:
        if candidate.span_id == span.parent_span_id:
            return candidate
    return None


def get_db_statement(span: Span) -> str:
    statement = span.attributes.get("db.statement")
    return statement if isinstance(statement, str) else ""


def get_http_url(span: Span) -> str:
    url = span.attributes.get("http.url")
    if url is None:
        url = span.attributes.get("url.full")
    return "" if url is None else str(url)


def extract_host(url: str) -> str:
    """Host[:port] of a URL, or the raw URL if it has no parsable host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    if not parsed.scheme or not parsed.netloc:
        return url
    return parsed.netloc.rsplit("@", 1)[-1]


def get_error_message(span: Span) -> str:
    for event in span.events:
        if event.name == "exception":
            message = event.attributes.get("exception.message")
            if isinstance(message, str):
                return message
    if span.status_message:
        return span.status_message
    return "Unknown error"


def _has_error_parent(span: Span, spans: List[Span]) -> bool:
    parent = get_parent(span, spans)
    return parent is not None and parent.status_code == StatusCode.ERROR


# ========== Database Rules ==========


def rule_n_plus_one(
    spans: List[Span], min_occurrences: Optional[int] = None
) -> List[Finding]:
    """Same normalized DB statement executed repeatedly within one trace."""
    threshold = (
        settings.N_PLUS_ONE_MIN_OCCURRENCES if min_occurrences is None else min_occurrences
    )
    groups: Dict[str, Dict] = {}

    for span in spans:
        if not is_db_span(span):
            continue
        statement = get_db_statement(span)
        if not statement:
            continue
        pattern = normalize_query(statement)
        group = groups.setdefault(pattern, {"count": 0, "raw": statement})
        group["count"] += 1

    findings = []
    for pattern, group in groups.items():
        if group["count"] < threshold:
            continue
        findings.append(
            Finding(
                severity=Severity.WARNING,
                rule="n-plus-one",
                message=f"N+1 query detected: '{truncate(pattern, 80)}' executed {group['count']} times",
                detail=f"Full query: {truncate(group['raw'], 200)}",
                suggestion="Use a batch query or JOIN instead of querying in a loop",
                key=pattern,
            )
        )
    return findings


def rule_slow_query(
    spans: List[Span], threshold_ms: Optional[int] = None
) -> List[Finding]:
    """Any DB span slower than the threshold, flagged individually."""
    threshold = settings.SLOW_QUERY_THRESHOLD_MS if threshold_ms is None else threshold_ms
    findings = []

    for span in spans:
        if not is_db_span(span) or span.duration_ms <= threshold:
            continue
        statement = get_db_statement(span)
        db_system = span.attributes.get("db.system") or "database"
        target = statement or span.operation_name
        findings.append(
            Finding(
                severity=Severity.WARNING,
                rule="slow-query",
                message=f"Slow {db_system} query: {truncate(target, 100)} ({span.duration_ms}ms)",
                suggestion="Consider adding an index or optimizing this query",
                key=normalize_query(statement) if statement else span.operation_name,
            )
        )
    return findings


# ========== Error Rules ==========


def rule_unhandled_error(spans: List[Span]) -> List[Finding]:
    """ERROR span under an ERROR parent: the error propagated uncaught."""
    findings = []

    for span in spans:
        if span.status_code != StatusCode.ERROR:
            continue
        if not _has_error_parent(span, spans):
            continue
        # Outbound HTTP failures are reported by rule_missing_error_handling
        if is_http_client_span(span):
            continue

        findings.append(
            Finding(
                severity=Severity.ERROR,
                rule="unhandled-error",
                message=f"Unhandled error in {span.operation_name}: {truncate(get_error_message(span), 100)}",
                suggestion="Add error handling (try/except) around this operation",
                key=f"{span.service_name}:{span.operation_name}",
            )
        )
    return findings


def rule_missing_error_handling(spans: List[Span]) -> List[Finding]:
    """Failed outbound HTTP call whose failure also failed the caller."""
    findings = []

    for span in spans:
        if not is_http_client_span(span) or span.status_code != StatusCode.ERROR:
            continue
        if not _has_error_parent(span, spans):
            continue

        url = get_http_url(span)
        host = extract_host(url)
        findings.append(
            Finding(
                severity=Severity.ERROR,
                rule="missing-error-handling",
                message=f"External API call to {host} failed with no error handling",
                detail=f"URL: {truncate(url, 150)}",
                suggestion="Wrap this API call in try/except and handle failures gracefully",
                key=host,
            )
        )
    return findings


# ========== Latency Rules ==========


def rule_slow_external_call(
    spans: List[Span], threshold_ms: Optional[int] = None
) -> List[Finding]:
    """Outbound HTTP call slower than the threshold, regardless of status."""
    threshold = (
        settings.SLOW_EXTERNAL_CALL_THRESHOLD_MS if threshold_ms is None else threshold_ms
    )
    findings = []

    for span in spans:
        if not is_http_client_span(span) or span.duration_ms <= threshold:
            continue

        url = get_http_url(span)
        host = extract_host(url)
        findings.append(
            Finding(
                severity=Severity.WARNING,
                rule="slow-external-call",
                message=f"Slow external call to {host}: {span.duration_ms}ms",
                detail=f"URL: {truncate(url, 150)}",
                suggestion="Consider adding a timeout, caching the response, or making it async",
                key=host,
            )
        )
    return findings


DEFAULT_ANALYZERS: Dict[str, Analyzer] = {
    "n-plus-one": rule_n_plus_one,
    "slow-query": rule_slow_query,
    "unhandled-error": rule_unhandled_error,
    "missing-error-handling": rule_missing_error_handling,
    "slow-external-call": rule_slow_external_call,
}
