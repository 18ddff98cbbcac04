"""
Request middleware: correlation ids, HTTP metrics and request logging.
"""

import re
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .logging import correlation_id_context, get_logger
from .metrics import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
)

logger = get_logger(__name__)

_EAN_SEGMENT = re.compile(r"/\d{8,}")


class ObservabilityMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, enable_request_logging: bool = True):
        super().__init__(app)
        self.enable_request_logging = enable_request_logging

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Request-ID") or request.headers.get("X-Correlation-ID")

        with correlation_id_context(correlation_id) as req_id:
            request.state.correlation_id = req_id
            path = self._sanitize_path(request.url.path)
            method = request.method
            quiet = self._is_health_check(request)

            http_requests_in_progress.labels(method=method, endpoint=path).inc()
            start_time = time.time()
            status = 500
            try:
                response = await call_next(request)
                status = response.status_code
                response.headers["X-Request-ID"] = req_id
                return response
            except Exception:
                logger.error(f"Request failed: {method} {path}", exc_info=True)
                raise
            finally:
                duration = time.time() - start_time
                http_requests_total.labels(method=method, endpoint=path, status=status).inc()
                http_request_duration_seconds.labels(method=method, endpoint=path).observe(duration)
                http_requests_in_progress.labels(method=method, endpoint=path).dec()

                if self.enable_request_logging and not quiet:
                    logger.info(
                        "Request completed",
                        extra={
                            "method": method,
                            "path": path,
                            "status_code": status,
                            "duration_seconds": round(duration, 3),
                        },
                    )

    def _sanitize_path(self, path: str) -> str:
        """Collapse EANs and numeric ids so label cardinality stays bounded."""
        return _EAN_SEGMENT.sub("/{id}", path)

    def _is_health_check(self, request: Request) -> bool:
        return request.url.path.startswith("/health") or request.url.path.startswith("/metrics")
