"""
Anomaly boundary: the surrounding product submits persisted events here.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from tracewarden.core.config import settings
from tracewarden.workers.analysis_worker import analysis_worker

from .schemas import Event, EventSubmission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["events"])


async def get_analysis_worker():
    """Dependency to get the analysis worker instance"""
    return analysis_worker


@router.post("", response_model=Event, status_code=202)
async def submit_event(submission: EventSubmission, worker=Depends(get_analysis_worker)):
    """Queue an event for anomaly classification and incident grouping"""
    fields = submission.model_dump(exclude_none=True)
    fields.setdefault("project_id", settings.DEFAULT_PROJECT_ID)
    event = Event(**fields)
    if not worker.submit_event(event):
        raise HTTPException(status_code=503, detail="Analysis queue is full")
    logger.info(f"Event {event.id} ({event.type.value}) queued for anomaly analysis")
    return event
