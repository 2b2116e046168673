"""
Custom middleware for cms_auth

Includes:
- Request ID tracking for request tracing
- HTTP metrics collection for Prometheus monitoring
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from cms_auth import metrics


STATIC_PATHS = frozenset(["/", "/health", "/metrics", "/docs", "/openapi.json", "/redoc"])


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Adds X-Request-ID to every response.

    A client-supplied X-Request-ID is kept, otherwise a new UUID is used.
    The id is also available to handlers as `request.state.request_id`.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID")
        if not request_id:
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response


class HTTPMetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect HTTP metrics for Prometheus.

    Tracks:
    - Total requests by method, endpoint, and status
    - Request duration by method and endpoint
    - Requests in progress by method and endpoint
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        normalized_path = normalize_path(request.url.path)

        metrics.http_requests_in_progress.labels(
            method=method,
            endpoint=normalized_path
        ).inc()

        start_time = time.time()

        try:
            response = await call_next(request)

            metrics.http_requests_total.labels(
                method=method,
                endpoint=normalized_path,
                status=response.status_code
            ).inc()

            metrics.http_request_duration_seconds.labels(
                method=method,
                endpoint=normalized_path
            ).observe(time.time() - start_time)

            return response

        finally:
            metrics.http_requests_in_progress.labels(
                method=method,
                endpoint=normalized_path
            ).dec()


def normalize_path(path: str) -> str:
    """
    Normalize path to avoid high cardinality in metrics.

    User ids are UUIDs, so /api/users/<uuid>/role becomes
    /api/users/{uuid}/role.
    """
    if path in STATIC_PATHS:
        return path

    normalized_parts = []
    for part in path.split("/"):
        if not part:
            continue

        if part.isdigit():
            normalized_parts.append("{id}")
        elif len(part) == 36 and part.count("-") == 4:
            normalized_parts.append("{uuid}")
        else:
            normalized_parts.append(part)

    return "/" + "/".join(normalized_parts)
