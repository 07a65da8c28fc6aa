"""
Incident endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from tracewarden.traces.models import Span

from .pipeline import event_pipeline
from .schemas import Incident, IncidentStatus, ProviderStatus
from .service import incident_service

router = APIRouter(prefix="/incidents", tags=["incidents"])


async def get_incident_service():
    """Dependency to get the incident service instance"""
    return incident_service


async def get_event_pipeline():
    return event_pipeline


@router.get("", response_model=List[Incident])
async def list_incidents(
    project_id: Optional[str] = Query(None, description="Filter by project"),
    status: Optional[IncidentStatus] = Query(None, description="Filter by status"),
    service=Depends(get_incident_service),
):
    """Incidents, newest first"""
    return service.list_incidents(project_id=project_id, status=status)


@router.get("/{incident_id}", response_model=Incident)
async def get_incident(incident_id: str, service=Depends(get_incident_service)):
    incident = service.get_incident(incident_id)
    if incident is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return incident


@router.get("/{incident_id}/traces", response_model=List[Span])
async def get_incident_traces(incident_id: str, service=Depends(get_incident_service)):
    """Spans of the traces correlated with the incident's events"""
    spans = await service.related_traces(incident_id)
    if spans is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return spans


@router.post("/{incident_id}/resolve", response_model=Incident)
async def resolve_incident(incident_id: str, service=Depends(get_incident_service)):
    incident = service.resolve_incident(incident_id)
    if incident is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return incident


@router.put("/provider-status", response_model=List[ProviderStatus])
async def update_provider_status(
    statuses: List[ProviderStatus], pipeline=Depends(get_event_pipeline)
):
    """Upstream provider health, used to group events during provider outages"""
    pipeline.update_provider_statuses(statuses)
    return pipeline.provider_statuses
