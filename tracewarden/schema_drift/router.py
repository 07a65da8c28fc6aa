"""
Response-shape boundary: route checks report observed responses here, and
file watchers report changed routes so their baselines are re-learned.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from tracewarden.core.exceptions import MalformedResponseBodyError

from .schemas import SchemaDiff
from .tracker import schema_tracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/schema", tags=["schema"])


class ObservedResponse(BaseModel):
    """A response captured by a route check"""

    method: str = Field(description="HTTP method of the checked route")
    route: str = Field(description="Route path, e.g. /api/users")
    status_code: int
    content_type: Optional[str] = "application/json"
    body: str = Field(description="Raw response body text")


class ObservedResponseResult(BaseModel):
    route: str
    method: str
    breaking: bool
    diffs: List[SchemaDiff]


class RouteResetRequest(BaseModel):
    routes: List[str] = Field(default_factory=list)


class RouteResetResult(BaseModel):
    reset: int


async def get_schema_tracker():
    """Dependency to get the schema tracker instance"""
    return schema_tracker


@router.post("/responses", response_model=ObservedResponseResult)
async def observe_response(
    request: ObservedResponse,
    tracker=Depends(get_schema_tracker),
):
    """Compare an observed response against the route's learned shape"""
    method = request.method.upper()
    try:
        diffs = tracker.observe_response(
            request.route,
            method,
            request.status_code,
            request.body,
            request.content_type,
        )
    except MalformedResponseBodyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception(f"Failed to check response shape for {method} {request.route}")
        raise HTTPException(status_code=500, detail="Failed to check response shape")

    return ObservedResponseResult(
        route=request.route,
        method=method,
        breaking=any(diff.is_breaking for diff in diffs),
        diffs=diffs,
    )


@router.post("/reset", response_model=RouteResetResult)
async def reset_routes(
    request: RouteResetRequest,
    tracker=Depends(get_schema_tracker),
):
    """Forget baselines for routes whose source changed"""
    return RouteResetResult(reset=tracker.reset_for_routes(request.routes))
