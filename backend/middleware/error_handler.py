"""
Global Error Handlers
Every failure leaves the API as ``{"error", "detail", "path", ...}`` JSON:
analyzer exceptions with their own code and status, HTTP errors, request
validation failures, and anything unexpected as a 500.
"""

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from exceptions import TennisFormException
from config.settings import get_settings

logger = logging.getLogger(__name__)


def _request_fields(request: Request) -> dict:
    return {"path": str(request.url.path), "method": request.method}


def _error_response(request: Request, status_code: int, error: str, detail, **extra) -> JSONResponse:
    body = {"error": error, "detail": detail, "path": str(request.url.path), **extra}
    return JSONResponse(status_code=status_code, content=body)


def _format_validation_errors(exc: RequestValidationError) -> list:
    return [
        {
            "field": ".".join(str(part) for part in err.get("loc", [])),
            "message": err.get("msg", "Validation error"),
            "type": err.get("type", "unknown"),
        }
        for err in exc.errors()
    ]


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""
    settings = get_settings()

    @app.exception_handler(TennisFormException)
    async def analyzer_exception_handler(request: Request, exc: TennisFormException) -> JSONResponse:
        # Unknown sessions and bad keypoints are routine client errors
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            level,
            f"{exc.code}: {exc.message}",
            extra={**_request_fields(request), "code": exc.code, "status_code": exc.status_code,
                   "details": exc.details}
        )
        extra = {"details": exc.details} if exc.details else {}
        return _error_response(request, exc.status_code, exc.code, exc.message, **extra)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        logger.warning(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={**_request_fields(request), "status_code": exc.status_code}
        )
        return _error_response(request, exc.status_code, "HTTP_ERROR", exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = _format_validation_errors(exc)
        logger.warning(
            f"Rejected request body for {request.url.path}",
            extra={**_request_fields(request), "errors": errors}
        )
        return _error_response(
            request, 422, "VALIDATION_ERROR", "Request validation failed", validation_errors=errors
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled {type(exc).__name__}: {exc}",
            exc_info=True,
            extra={**_request_fields(request), "exception_type": type(exc).__name__}
        )

        if not settings.DEBUG:
            return _error_response(request, 500, "INTERNAL_SERVER_ERROR", "An unexpected error occurred")
        return _error_response(
            request, 500, "INTERNAL_SERVER_ERROR", str(exc), traceback=traceback.format_exc()
        )
