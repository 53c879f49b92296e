"""API Middleware for request processing"""

import time
from typing import Callable
from uuid import uuid4
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings
from app.core.logging_config import get_logger
from app.core.monitoring import record_http_request


logger = get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add unique request ID to each request.

    The ID is stored on the request state and echoed in the X-Request-ID
    response header. An incoming X-Request-ID is reused.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log requests and count them per route.

    Logs method, path, tenant, status and timing with the request ID.
    Health and metrics requests are only logged in debug mode.
    """

    EXCLUDED_PATHS = {
        "/health",
        "/metrics",
        "/favicon.ico",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = getattr(request.state, "request_id", "unknown")
        org_id = request.headers.get("X-Org-ID")
        skip_logging = request.url.path in self.EXCLUDED_PATHS and not settings.DEBUG

        start_time = time.time()

        if not skip_logging:
            logger.info(
                "request_started",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                org_id=org_id,
            )

        response = await call_next(request)
        response_time = time.time() - start_time

        # Label by route template so ids do not explode cardinality
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        record_http_request(request.method, endpoint, response.status_code)

        if not skip_logging or response.status_code >= 400:
            logger.info(
                "request_completed",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                response_time_ms=int(response_time * 1000),
                org_id=org_id,
            )

        return response
