"""
Unit tests for SchemaTracker baseline learning and auto-acceptance.
"""

import json
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from tracewarden.core.exceptions import MalformedResponseBodyError
from tracewarden.schema_drift.schemas import DiffType
from tracewarden.schema_drift.tracker import SchemaTracker, log_drift


class TestProcessResponse:
    def test_cold_start_learns_baseline_silently(self, schema_tracker):
        assert schema_tracker.process_response("/api/users", "GET", {"a": "x"}) == []
        assert schema_tracker.baseline_count() == 1

    def test_divergent_shape_promoted_on_third_match(self, schema_tracker):
        schema_tracker.process_response("/r", "GET", {"a": "x"})

        first = schema_tracker.process_response("/r", "GET", {"a": 1})
        second = schema_tracker.process_response("/r", "GET", {"a": 2})
        third = schema_tracker.process_response("/r", "GET", {"a": 3})
        fourth = schema_tracker.process_response("/r", "GET", {"a": 4})

        assert [(d.type, d.path) for d in first] == [(DiffType.TYPE_CHANGED, "$.a")]
        assert second
        assert third == []
        assert fourth == []
        assert schema_tracker.process_response("/r", "GET", {"a": "x"})  # old shape now drifts

    def test_different_divergent_shape_restarts_pending(self, schema_tracker):
        schema_tracker.process_response("/r", "GET", {"a": "x"})
        schema_tracker.process_response("/r", "GET", {"a": 1})
        schema_tracker.process_response("/r", "GET", {"a": 1})
        schema_tracker.process_response("/r", "GET", {"a": True})

        baseline = schema_tracker.get_baseline("/r", "GET")
        assert baseline.pending_matches == 1

    def test_baseline_match_clears_pending(self, schema_tracker):
        schema_tracker.process_response("/r", "GET", {"a": "x"})
        schema_tracker.process_response("/r", "GET", {"a": 1})
        schema_tracker.process_response("/r", "GET", {"a": 1})
        schema_tracker.process_response("/r", "GET", {"a": "y"})

        baseline = schema_tracker.get_baseline("/r", "GET")
        assert baseline.pending_schema is None
        assert baseline.pending_matches == 0
        assert schema_tracker.process_response("/r", "GET", {"a": 1})

    def test_routes_and_methods_are_independent(self, schema_tracker):
        schema_tracker.process_response("/r", "GET", {"a": "x"})
        assert schema_tracker.process_response("/r", "POST", {"a": 1}) == []
        assert schema_tracker.baseline_count() == 2

    def test_custom_auto_accept_count(self):
        tracker = SchemaTracker(auto_accept_count=1)
        tracker.process_response("/r", "GET", {"a": "x"})
        assert tracker.process_response("/r", "GET", {"a": 1})
        assert tracker.process_response("/r", "GET", {"a": 1}) == []


class TestObserveResponse:
    def test_non_success_status_is_ignored(self, schema_tracker):
        assert schema_tracker.observe_response("/r", "GET", 500, '{"error": "x"}') == []
        assert schema_tracker.baseline_count() == 0

    def test_non_json_content_type_is_ignored(self, schema_tracker):
        assert schema_tracker.observe_response("/r", "GET", 200, "<html>", "text/html") == []
        assert schema_tracker.baseline_count() == 0

    def test_invalid_json_raises(self, schema_tracker):
        with pytest.raises(MalformedResponseBodyError):
            schema_tracker.observe_response("/r", "GET", 200, "{nope", "application/json")

    def test_drift_is_reported(self, schema_tracker):
        schema_tracker.observe_response("/r", "GET", 200, json.dumps({"a": "x"}))
        with patch("tracewarden.schema_drift.tracker.log_drift") as mock_log_drift:
            diffs = schema_tracker.observe_response("/r", "GET", 200, json.dumps({}))
        assert [d.type for d in diffs] == [DiffType.REMOVED]
        mock_log_drift.assert_called_once_with("/r", "GET", diffs)


class TestResetAndLogging:
    def test_reset_for_routes_drops_every_method(self, schema_tracker):
        schema_tracker.process_response("/r", "GET", {"a": 1})
        schema_tracker.process_response("/r", "DELETE", {"a": 1})
        schema_tracker.process_response("/other", "GET", {"a": 1})

        assert schema_tracker.reset_for_routes(["/r"]) == 2
        assert schema_tracker.baseline_count() == 1
        # Relearned silently after reset
        assert schema_tracker.process_response("/r", "GET", {"b": "x"}) == []

    def test_log_drift_flags_breaking_changes(self, schema_tracker):
        schema_tracker.process_response("/r", "GET", {"a": 1})
        added_only = schema_tracker.process_response("/r", "GET", {"a": 1, "b": 2})
        removed = SchemaTracker()
        removed.process_response("/r", "GET", {"a": 1})
        removal_diffs = removed.process_response("/r", "GET", {})

        assert log_drift("/r", "GET", added_only) is False
        assert log_drift("/r", "GET", removal_diffs) is True
        assert log_drift("/r", "GET", []) is False


class TestConcurrentResponses:
    def test_same_route_updates_are_serialized(self):
        tracker = SchemaTracker(auto_accept_count=3)
        tracker.process_response("/r", "GET", {"a": "x"})

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(
                pool.map(lambda i: tracker.process_response("/r", "GET", {"a": i}), range(40))
            )

        # two drift reports build the pending shape, the third promotes it
        assert sum(1 for diffs in results if diffs) == 2
        baseline = tracker.get_baseline("/r", "GET")
        assert baseline.schema.fields["a"].kind == "number"
        assert baseline.pending_schema is None
        assert baseline.consecutive_matches == 3 + 37

    def test_different_routes_learn_independently(self):
        tracker = SchemaTracker()

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(
                pool.map(
                    lambda i: tracker.process_response(f"/r{i % 10}", "GET", {"a": i}),
                    range(50),
                )
            )

        assert tracker.baseline_count() == 10


class TestOptionalFields:
    def test_null_field_does_not_disturb_pending_shape(self, schema_tracker):
        schema_tracker.process_response("/r", "GET", {"a": "x", "b": 1})
        schema_tracker.process_response("/r", "GET", {"a": "x", "b": "1"})

        assert schema_tracker.process_response("/r", "GET", {"a": None, "b": 1}) == []
        assert schema_tracker.get_baseline("/r", "GET").schema.fields["a"].kind == "string"
