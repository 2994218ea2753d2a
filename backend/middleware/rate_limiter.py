"""
Rate Limiting
Uses slowapi to bound session creation and frame submission per client address.
"""

import logging

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.responses import JSONResponse

from config.settings import get_settings

logger = logging.getLogger(__name__)


def create_limiter() -> Limiter:
    settings = get_settings()

    return Limiter(
        key_func=get_remote_address,
        enabled=settings.RATE_LIMIT_ENABLED,
        storage_uri="memory://",
        strategy="fixed-window"
    )


# Global limiter instance
limiter = create_limiter()


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        f"Rate limit exceeded for {get_remote_address(request)}",
        extra={
            "path": str(request.url.path),
            "method": request.method,
            "limit": str(exc.detail)
        }
    )

    return JSONResponse(
        status_code=429,
        content={
            "error": "RATE_LIMIT_EXCEEDED",
            "detail": f"Rate limit exceeded: {exc.detail}",
            "path": str(request.url.path)
        },
        headers={
            "Retry-After": "60",
            "X-RateLimit-Limit": str(exc.detail)
        }
    )


def setup_rate_limiting(app) -> None:
    """Attach the limiter and its 429 handler to the app."""
    settings = get_settings()

    if not settings.RATE_LIMIT_ENABLED:
        logger.info("Rate limiting is disabled")
        return

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    logger.info("Rate limiting enabled")
