"""
AnalysisWorker - runs trace analysis and the event anomaly pipeline off the
ingestion path.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from tracewarden.analysis.engine import AnalysisEngine, analysis_engine
from tracewarden.core.logging_config import clear_trace_id, set_trace_id
from tracewarden.events.schemas import Event
from tracewarden.incidents.pipeline import EventPipeline, event_pipeline
from tracewarden.traces.store import SpanStore, span_store

from .base_worker import BaseWorker

logger = logging.getLogger(__name__)

TRACE_MESSAGE = "trace"
EVENT_MESSAGE = "event"


class AnalysisWorker(BaseWorker):
    def __init__(
        self,
        engine: Optional[AnalysisEngine] = None,
        store: Optional[SpanStore] = None,
        pipeline: Optional[EventPipeline] = None,
        max_queue_size: Optional[int] = None,
    ):
        super().__init__("analysis", max_queue_size=max_queue_size)
        self.engine = engine or analysis_engine
        self.store = store or span_store
        self.pipeline = pipeline or event_pipeline
        self._pending_traces: Set[str] = set()

    def submit_trace(self, trace_id: str) -> bool:
        """Queue a trace for analysis; a trace already waiting is not queued twice."""
        if trace_id in self._pending_traces:
            return True
        accepted = self.submit({"type": TRACE_MESSAGE, "trace_id": trace_id})
        if accepted:
            self._pending_traces.add(trace_id)
        return accepted

    def submit_event(self, event: Event) -> bool:
        return self.submit({"type": EVENT_MESSAGE, "event": event})

    async def process_message(self, message_body: Dict[str, Any]):
        message_type = message_body.get("type")
        if message_type == TRACE_MESSAGE:
            await self._analyze_trace(message_body["trace_id"])
        elif message_type == EVENT_MESSAGE:
            await self.pipeline.process_event(message_body["event"])
        else:
            logger.error(f"Unknown analysis message type: {message_type}")

    async def _analyze_trace(self, trace_id: str):
        # Spans that arrive while a pass runs re-queue the trace.
        self._pending_traces.discard(trace_id)
        spans = self.store.spans_for_trace(trace_id)
        if not spans:
            logger.debug(f"Trace {trace_id} no longer in store, skipping analysis")
            return

        set_trace_id(trace_id)
        try:
            await asyncio.to_thread(self.engine.analyze_trace, spans)
        finally:
            clear_trace_id()


analysis_worker = AnalysisWorker()
