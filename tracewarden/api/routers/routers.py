# Central API router include file
from fastapi import APIRouter

from tracewarden.events.router import router as events_router
from tracewarden.incidents.router import router as incidents_router
from tracewarden.ingestion.router import router as ingestion_router
from tracewarden.schema_drift.router import router as schema_router
from tracewarden.status.router import router as status_router
from tracewarden.traces.router import router as traces_router

# Create main API router
api_router = APIRouter()

api_router.include_router(ingestion_router)
api_router.include_router(traces_router)
api_router.include_router(status_router)
api_router.include_router(schema_router)
api_router.include_router(events_router)
api_router.include_router(incidents_router)
