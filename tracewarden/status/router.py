"""
Status and issue endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from tracewarden.analysis.engine import analysis_engine
from tracewarden.analysis.schemas import Issue, IssueState

from .schemas import StatusSnapshot
from .service import status_service

router = APIRouter(prefix="/api", tags=["status"])


async def get_status_service():
    """Dependency to get the status service instance"""
    return status_service


async def get_analysis_engine():
    """Dependency to get the analysis engine instance"""
    return analysis_engine


@router.get("/status", response_model=StatusSnapshot)
async def get_status(service=Depends(get_status_service)):
    return service.snapshot()


@router.get("/issues", response_model=List[Issue])
async def list_issues(
    state: Optional[IssueState] = Query(None, description="active or resolved"),
    engine=Depends(get_analysis_engine),
):
    """Tracked issues ordered by first detection"""
    return engine.get_issues(state)
