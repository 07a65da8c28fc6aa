"""
Read endpoints for stored traces.
"""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from .models import Span, TraceSummary
from .store import span_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/traces", tags=["traces"])


async def get_span_store():
    """Dependency to get the span store instance"""
    return span_store


@router.get("", response_model=List[TraceSummary])
async def list_traces(
    project_id: Optional[str] = Query(None, description="Filter by project"),
    limit: int = Query(50, ge=1, le=500, description="Max number of traces"),
    status: Optional[Literal["error", "ok"]] = Query(None, description="Filter by outcome"),
    store=Depends(get_span_store),
):
    """Recent traces, most recent first"""
    return store.recent_traces(project_id=project_id, limit=limit, status=status)


@router.get("/{trace_id}", response_model=List[Span])
async def get_trace(trace_id: str, store=Depends(get_span_store)):
    """All spans of one trace ordered by start time"""
    spans = store.spans_for_trace(trace_id)
    if not spans:
        raise HTTPException(status_code=404, detail="Trace not found")
    return spans
