"""
Request Timing Middleware
Times every request and propagates a correlation ID through the logs and
the response headers.
"""

import time
import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from logging_config import new_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000.0


class PerformanceMiddleware(BaseHTTPMiddleware):
    """
    Adds X-Correlation-ID and X-Process-Time-Ms headers and logs each
    request, at WARNING when slow. Health checks are not logged.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or new_correlation_id()
        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time-Ms"] = f"{duration_ms:.2f}"

        if not request.url.path.startswith("/health"):
            slow = duration_ms > SLOW_REQUEST_MS
            logger.log(
                logging.WARNING if slow else logging.INFO,
                f"{request.method} {request.url.path} - {response.status_code} ({duration_ms:.2f}ms)",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                    "slow": slow
                }
            )

        return response
