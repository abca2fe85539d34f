"""Centralized logging configuration for the application."""
import logging
import sys
import json
from typing import Any, Dict, Optional
from app.core.config import settings

# Attributes callers may attach with ``extra=`` that are promoted to top-level JSON keys
TAP_FIELDS = ("uid", "counter", "mode", "reason", "device_id", "event_type")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging (production)."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "request_id"):
            log_data["request_id"] = record.request_id

        for field in TAP_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console (development)."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console, appending any tap fields."""
        message = super().format(record)
        if hasattr(record, "request_id"):
            message = f"[{record.request_id}] {message}"
        fields = {f: getattr(record, f) for f in TAP_FIELDS if hasattr(record, f)}
        if fields:
            message = f"{message} {fields}"
        return message


def setup_logging(environment: Optional[str] = None) -> None:
    """
    Configure application logging based on environment.

    - Development: Console formatter with DEBUG level
    - Anything else: JSON formatter with INFO level
    """
    environment = environment or settings.environment
    if environment == "development":
        log_level = logging.DEBUG
        formatter = ConsoleFormatter()
    else:
        log_level = logging.INFO
        formatter = JSONFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    root_logger.addHandler(console_handler)

    # Set levels for third-party loggers
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.info(f"Logging configured: environment={environment}, level={logging.getLevelName(log_level)}")
