"""
Per-route response shape tracking with hysteresis-based auto-acceptance.
"""

import json
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Union

from tracewarden.core.config import settings
from tracewarden.core.exceptions import MalformedResponseBodyError
from tracewarden.core.otel_metrics import SCHEMA_METRICS

from .inference import compare_schemas, infer_schema
from .schemas import DiffType, SchemaBaseline, SchemaDiff

logger = logging.getLogger(__name__)

DIFF_LABELS = {
    DiffType.REMOVED: "Removed field",
    DiffType.TYPE_CHANGED: "Type changed",
    DiffType.ADDED: "New field",
    DiffType.NULL_CHANGED: "Null changed",
}


def baseline_key(method: str, route: str) -> str:
    return f"{method.upper()} {route}"


class SchemaTracker:
    """
    Keeps one baseline per "METHOD route" key.

    Updates to the same key are serialized by a per-key lock; different keys
    never contend beyond the brief lookup of their lock.
    """

    def __init__(self, auto_accept_count: Optional[int] = None):
        self.auto_accept_count = (
            settings.SCHEMA_AUTO_ACCEPT_COUNT if auto_accept_count is None else auto_accept_count
        )
        self._baselines: Dict[str, SchemaBaseline] = {}
        self._key_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def process_response(self, route: str, method: str, body: Any) -> List[SchemaDiff]:
        """
        Compare a successful JSON response body against the route's baseline.

        Returns:
            Diffs against the baseline; empty on cold start, on a match, and
            when a pending shape is auto-accepted
        """
        key = baseline_key(method, route)
        current = infer_schema(body)

        with self._lock_for(key):
            with self._registry_lock:
                baseline = self._baselines.get(key)
                if baseline is None:
                    self._baselines[key] = SchemaBaseline(schema=current)
                    return []

            diffs = compare_schemas(baseline.schema, current)

            if not diffs:
                baseline.consecutive_matches += 1
                baseline.pending_schema = None
                baseline.pending_matches = 0
                return []

            if baseline.pending_schema is not None and not compare_schemas(
                baseline.pending_schema, current
            ):
                baseline.pending_matches += 1
                if baseline.pending_matches >= self.auto_accept_count:
                    baseline.schema = baseline.pending_schema
                    baseline.consecutive_matches = baseline.pending_matches
                    baseline.pending_schema = None
                    baseline.pending_matches = 0
                    logger.info(f"{key}: new response shape accepted as baseline")
                    if SCHEMA_METRICS:
                        SCHEMA_METRICS["schema_promotions_total"].add(1)
                    return []
                return diffs

            baseline.pending_schema = current
            baseline.pending_matches = 1
            return diffs

    def observe_response(
        self,
        route: str,
        method: str,
        status_code: int,
        body_text: Union[str, bytes],
        content_type: Optional[str] = None,
    ) -> List[SchemaDiff]:
        """
        Route-check boundary: only 2xx JSON responses reach process_response.

        Raises:
            MalformedResponseBodyError: a JSON response whose body does not parse
        """
        if not 200 <= status_code < 300:
            return []
        if content_type and "json" not in content_type.lower():
            return []

        try:
            body = json.loads(body_text)
        except (TypeError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedResponseBodyError(
                f"{baseline_key(method, route)} returned a body that is not valid JSON"
            ) from e

        diffs = self.process_response(route, method, body)
        if diffs:
            log_drift(route, method, diffs)
            if SCHEMA_METRICS:
                SCHEMA_METRICS["schema_drift_total"].add(1, {"route": route})
        return diffs

    def reset_for_routes(self, routes: Iterable[str]) -> int:
        """Drop baselines for every method of each route. Returns how many were dropped."""
        suffixes = {f" {route}" for route in routes}
        removed = 0
        with self._registry_lock:
            for key in list(self._baselines):
                if any(key.endswith(suffix) for suffix in suffixes):
                    del self._baselines[key]
                    removed += 1
        if removed:
            logger.info(f"Reset {removed} schema baseline(s) after source change")
        return removed

    def get_baseline(self, route: str, method: str) -> Optional[SchemaBaseline]:
        with self._registry_lock:
            return self._baselines.get(baseline_key(method, route))

    def baseline_count(self) -> int:
        with self._registry_lock:
            return len(self._baselines)

    def clear(self):
        with self._registry_lock:
            self._baselines.clear()


def log_drift(route: str, method: str, diffs: List[SchemaDiff]) -> bool:
    """
    Report a drifted response, one line per diff.

    Returns:
        True if any diff is a breaking change
    """
    if not diffs:
        return False

    logger.warning(f"{method.upper()} {route} - schema changed")
    breaking = False
    for diff in diffs:
        logger.warning(f"  {DIFF_LABELS[diff.type]}: {diff.path} ({diff.detail})")
        if diff.is_breaking:
            breaking = True

    if breaking:
        logger.warning("  This may break frontend consumers of this API")
    return breaking


schema_tracker = SchemaTracker()
