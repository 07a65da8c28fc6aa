"""Middleware package for the application."""

from tracewarden.middleware.http_metrics import HTTPMetricsMiddleware
from tracewarden.middleware.request_id import RequestIDMiddleware

__all__ = ["HTTPMetricsMiddleware", "RequestIDMiddleware"]
