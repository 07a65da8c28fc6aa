"""
Unit tests for the built-in trace analyzers.
"""

from tracewarden.analysis.analyzers import (
    extract_host,
    normalize_query,
    rule_missing_error_handling,
    rule_n_plus_one,
    rule_slow_external_call,
    rule_slow_query,
    rule_unhandled_error,
)
from tracewarden.analysis.schemas import Severity
from tracewarden.traces.models import SpanKind, StatusCode
from tests.factories import make_db_span, make_root_span, make_span


def _http_client_span(url, **kwargs):
    return make_span(
        parent_span_id=kwargs.pop("parent_span_id", "root"),
        operation_name="HTTP GET",
        kind=SpanKind.CLIENT,
        attributes={"http.url": url},
        **kwargs,
    )


class TestHelpers:
    def test_normalize_query_replaces_literals(self):
        assert (
            normalize_query("SELECT * FROM users  WHERE id = 42 AND name = 'bob'")
            == "SELECT * FROM users WHERE id = ? AND name = ?"
        )

    def test_extract_host_strips_userinfo(self):
        assert extract_host("https://user:pw@api.stripe.com:443/v1/charges") == "api.stripe.com:443"

    def test_extract_host_falls_back_to_raw_url(self):
        assert extract_host("not a url") == "not a url"


class TestNPlusOne:
    def test_five_identical_queries_flagged(self):
        spans = [make_root_span()] + [
            make_db_span(f"SELECT * FROM orders WHERE user_id = {i}") for i in range(5)
        ]

        findings = rule_n_plus_one(spans)

        assert len(findings) == 1
        assert findings[0].rule == "n-plus-one"
        assert findings[0].severity == Severity.WARNING
        assert "executed 5 times" in findings[0].message
        assert findings[0].key == "SELECT * FROM orders WHERE user_id = ?"

    def test_four_identical_queries_not_flagged(self):
        spans = [make_db_span(f"SELECT * FROM orders WHERE user_id = {i}") for i in range(4)]
        assert rule_n_plus_one(spans) == []

    def test_non_db_spans_ignored(self):
        spans = [make_span(attributes={"db.statement": "SELECT 1"}) for _ in range(6)]
        assert rule_n_plus_one(spans) == []


class TestSlowQuery:
    def test_threshold_is_exclusive(self):
        spans = [
            make_db_span("SELECT a", duration_ms=500),
            make_db_span("SELECT b", duration_ms=501),
        ]
        findings = rule_slow_query(spans)
        assert len(findings) == 1
        assert "SELECT b" in findings[0].message
        assert "501ms" in findings[0].message

    def test_falls_back_to_operation_name(self):
        span = make_span(
            operation_name="redis GET",
            duration_ms=900,
            attributes={"db.system": "redis"},
        )
        findings = rule_slow_query([span])
        assert findings[0].key == "redis GET"

    def test_explicit_zero_threshold_is_honoured(self):
        spans = [make_db_span("SELECT a", duration_ms=1)]
        assert len(rule_slow_query(spans, threshold_ms=0)) == 1
        assert rule_slow_query(spans) == []


class TestErrorRules:
    def test_error_under_error_parent_is_unhandled(self):
        spans = [
            make_root_span(status_code=StatusCode.ERROR),
            make_span(
                parent_span_id="root",
                operation_name="charge_card",
                status_code=StatusCode.ERROR,
                status_message="card declined",
            ),
        ]

        findings = rule_unhandled_error(spans)

        assert len(findings) == 1
        assert findings[0].severity == Severity.ERROR
        assert "charge_card" in findings[0].message
        assert "card declined" in findings[0].message

    def test_error_under_ok_parent_is_handled(self):
        spans = [
            make_root_span(status_code=StatusCode.OK),
            make_span(parent_span_id="root", status_code=StatusCode.ERROR),
        ]
        assert rule_unhandled_error(spans) == []

    def test_orphan_error_span_is_ignored(self):
        spans = [make_span(parent_span_id="missing", status_code=StatusCode.ERROR)]
        assert rule_unhandled_error(spans) == []

    def test_failed_http_call_reported_by_missing_error_handling_only(self):
        spans = [
            make_root_span(status_code=StatusCode.ERROR),
            _http_client_span("https://api.example.com/v1/users", status_code=StatusCode.ERROR),
        ]

        assert rule_unhandled_error(spans) == []
        findings = rule_missing_error_handling(spans)
        assert len(findings) == 1
        assert findings[0].key == "api.example.com"
        assert "api.example.com" in findings[0].message


class TestSlowExternalCall:
    def test_slow_call_flagged_regardless_of_status(self):
        spans = [
            make_root_span(),
            _http_client_span("https://slow.example.com/x", duration_ms=2500, status_code=StatusCode.OK),
            _http_client_span("https://fast.example.com/x", duration_ms=2000),
        ]

        findings = rule_slow_external_call(spans)

        assert [f.key for f in findings] == ["slow.example.com"]
        assert "2500ms" in findings[0].message

    def test_rules_do_not_mutate_input(self):
        spans = [_http_client_span("https://slow.example.com", duration_ms=3000)]
        before = [s.model_dump() for s in spans]
        rule_slow_external_call(spans)
        assert [s.model_dump() for s in spans] == before
