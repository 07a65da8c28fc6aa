"""
OTLP/HTTP JSON receiver endpoints.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from tracewarden.core.exceptions import MalformedPayloadError
from tracewarden.core.otel_metrics import INGESTION_METRICS

from .service import trace_ingestion_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["ingestion"])


async def get_ingestion_service():
    """Dependency to get the trace ingestion service instance"""
    return trace_ingestion_service


@router.post("/traces")
async def ingest_traces(
    request: Request,
    project_id: Optional[str] = Header(None, alias="X-Project-ID"),
    service=Depends(get_ingestion_service),
) -> Dict[str, Any]:
    """Receive an OTLP/JSON trace export"""
    body = await request.body()
    try:
        result = await service.ingest(body, project_id=project_id)
    except MalformedPayloadError as e:
        logger.warning(f"Rejected trace export: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Failed to ingest trace export")
        raise HTTPException(status_code=500, detail="Failed to ingest traces")
    return result.to_otlp_response()


@router.post("/metrics")
async def ingest_metrics(request: Request) -> Dict[str, Any]:
    """Acknowledge an OTLP/JSON metrics export; metric data is not analyzed"""
    body = await request.body()
    logger.debug(f"Received metrics export ({len(body)} bytes)")
    if INGESTION_METRICS:
        INGESTION_METRICS["metrics_exports_total"].add(1)
    return {"partialSuccess": {}}
