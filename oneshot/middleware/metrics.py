"""
FastAPI middleware for automatic Prometheus metrics collection.

This middleware tracks:
- Total API requests with method, endpoint, and status labels
- Request duration histograms
- In-progress request gauges
"""
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from oneshot.metrics import api_requests_in_progress, record_api_request

# Route prefixes whose next path segment is an object identifier
_ID_SEGMENT_PARENTS = {
    "d": "{filename}",
    "download": "{filename}",
    "files": "{unique_id}",
}


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware to automatically track API request metrics.

    Features:
    - Tracks total requests per endpoint
    - Measures request duration
    - Tracks in-progress requests
    - Excludes metrics endpoint from tracking to avoid feedback loops
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process request and collect metrics.

        Args:
            request: FastAPI request object
            call_next: Next middleware/handler in chain

        Returns:
            Response object
        """
        method = request.method
        path = request.url.path

        # Skip metrics collection for the /metrics endpoint itself
        if path == "/metrics":
            return await call_next(request)

        normalized_path = self._normalize_path(path)

        api_requests_in_progress.labels(method=method, endpoint=normalized_path).inc()
        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            record_api_request(method, normalized_path, status_code, time.time() - start_time)
            api_requests_in_progress.labels(method=method, endpoint=normalized_path).dec()

    def _normalize_path(self, path: str) -> str:
        """
        Normalize URL path by replacing identifiers with placeholders.

        Examples:
            /d/0f3a...9c.txt -> /d/{filename}
            /download/0f3a...9c.txt -> /download/{filename}
            /api/files/0f3a...9c -> /api/files/{unique_id}

        Args:
            path: Original request path

        Returns:
            Normalized path with placeholders
        """
        parts = path.split("/")
        normalized_parts = []

        for i, part in enumerate(parts):
            parent = parts[i - 1] if i > 0 else ""
            if part and parent in _ID_SEGMENT_PARENTS:
                normalized_parts.append(_ID_SEGMENT_PARENTS[parent])
            else:
                normalized_parts.append(part)

        return "/".join(normalized_parts)
