"""
HTTP metrics middleware for request/response telemetry.
"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from tracewarden.core.otel_metrics import HTTP_METRICS

logger = logging.getLogger(__name__)


class HTTPMetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect HTTP request/response metrics.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        method = request.method
        path = request.url.path

        try:
            response: Response = await call_next(request)
            duration = time.time() - start_time

            if HTTP_METRICS:
                attributes = {
                    "method": method,
                    "status_class": f"{response.status_code // 100}xx",
                }
                HTTP_METRICS["http_requests_total"].add(1, attributes)
                HTTP_METRICS["http_request_duration_seconds"].record(duration, attributes)

            if duration > 1.0:
                logger.warning(
                    f"Slow request: {method} {path} took {duration:.3f}s "
                    f"(status: {response.status_code})"
                )

            return response

        except Exception as e:
            duration = time.time() - start_time

            if HTTP_METRICS:
                attributes = {"method": method, "status_class": "5xx"}
                HTTP_METRICS["http_requests_total"].add(1, attributes)
                HTTP_METRICS["http_request_duration_seconds"].record(duration, attributes)

            logger.error(f"Request error: {method} {path} - {e}")
            raise
