"""
Structured Logging Configuration
JSON log lines for production, coloured lines for development, both tagged
with a per-request correlation ID.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Context variable for correlation ID (per request / per task)
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

# LogRecord attributes that are not user-supplied extras
_RECORD_ATTRS = frozenset({
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module", "msecs",
    "message", "msg", "name", "pathname", "process", "processName",
    "relativeCreated", "stack_info", "thread", "threadName", "taskName",
    "correlation_id",
})

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = ("uvicorn", "uvicorn.access", "httpx", "httpcore", "absl", "mediapipe")


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def get_correlation_id() -> str:
    """Current correlation ID, creating one for this context if missing"""
    cid = correlation_id_var.get()
    if not cid:
        cid = new_correlation_id()
        correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }

        if record.levelno >= logging.WARNING:
            payload["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        for key, value in _extra_fields(record).items():
            try:
                json.dumps(value)
                payload[key] = value
            except (TypeError, ValueError):
                payload[key] = str(value)

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    """Human-readable coloured lines for local development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        cid = getattr(record, "correlation_id", None) or get_correlation_id()
        stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        line = f"{stamp} {color}{record.levelname:8}{self.RESET} [{cid}] {record.name}: {record.getMessage()}"

        extras = _extra_fields(record)
        if extras:
            line += " | " + ", ".join(f"{k}={v}" for k, v in extras.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class CorrelationFilter(logging.Filter):
    """Stamps every record with the active correlation ID"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


def _build_handler(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(logging.DEBUG)
    handler.addFilter(CorrelationFilter())
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None
) -> None:
    """
    Configure root logging for the service.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Emit JSON lines on stdout instead of coloured text
        log_file: Optional path that additionally receives JSON lines
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    console_formatter = JSONFormatter() if json_format else PrettyFormatter()
    root.addHandler(_build_handler(logging.StreamHandler(sys.stdout), console_formatter))

    if log_file:
        root.addHandler(_build_handler(logging.FileHandler(log_file), JSONFormatter()))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info(
        "Logging configured",
        extra={"log_level": level, "json_format": json_format, "log_file": log_file}
    )


class LogTimer:
    """Logs how long a block took; slow blocks are logged as warnings."""

    def __init__(self, logger: logging.Logger, operation: str, slow_ms: float = 5000.0, **extra):
        self.logger = logger
        self.operation = operation
        self.slow_ms = slow_ms
        self.extra = extra
        self.duration_ms: Optional[float] = None
        self._start: Optional[float] = None

    def __enter__(self) -> "LogTimer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.duration_ms = (time.perf_counter() - self._start) * 1000
        fields = {**self.extra, "duration_ms": round(self.duration_ms, 2)}

        if exc_type:
            self.logger.error(
                f"{self.operation} failed after {self.duration_ms:.2f}ms",
                extra={**fields, "error": str(exc_val)}
            )
        else:
            level = logging.WARNING if self.duration_ms > self.slow_ms else logging.INFO
            self.logger.log(level, f"{self.operation} completed in {self.duration_ms:.2f}ms", extra=fields)

        return False
