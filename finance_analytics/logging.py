"""
Structured logging configuration for the Finance Analytics Service.

All logs are JSON-formatted with these standard fields:
- timestamp: ISO 8601 timestamp
- event: The log event name (first positional argument)
- request_id: UUID for tracing requests end-to-end
- user_id: User identifier (when available)
- duration_ms: Operation duration in milliseconds
- engine: Which analysis produced the entry (for analysis events)

Request and user ids are bound with structlog.contextvars, so every entry
logged while a request is in flight carries them. Fields passed explicitly
to a log call win over bound ones.
"""
import logging
import sys
import time
import uuid
from typing import Any, Optional

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog with JSON output and context processors."""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance."""
    return structlog.get_logger(name)


def set_request_context(request_id: str, user_id: Optional[str] = None) -> None:
    """Bind the request (and, once known, the user) to every later log entry."""
    structlog.contextvars.bind_contextvars(request_id=request_id)
    if user_id:
        structlog.contextvars.bind_contextvars(user_id=user_id)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return str(uuid.uuid4())


class TimedOperation:
    """Context manager for timing operations and logging duration."""

    def __init__(
        self,
        event: str,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        **extra_fields: Any,
    ):
        self.event = event
        self.logger = logger or get_logger()
        self.extra_fields = extra_fields
        self.start_time: float = 0
        self.duration_ms: float = 0

    @property
    def duration_seconds(self) -> float:
        return self.duration_ms / 1000

    def __enter__(self) -> "TimedOperation":
        self.start_time = time.perf_counter()
        self.logger.debug(f"{self.event}_started", **self.extra_fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000

        if exc_type is not None:
            self.logger.error(
                f"{self.event}_failed",
                duration_ms=round(self.duration_ms, 2),
                error=str(exc_val),
                error_type=exc_type.__name__,
                **self.extra_fields,
            )
        else:
            self.logger.info(
                f"{self.event}_completed",
                duration_ms=round(self.duration_ms, 2),
                **self.extra_fields,
            )


def log_analysis(
    logger: structlog.stdlib.BoundLogger,
    user_id: str,
    engine: str,
    transaction_count: int,
    account_count: int,
    duration_ms: float,
    **result_fields: Any,
) -> None:
    """Log a completed analysis with standard fields."""
    logger.info(
        "analysis_completed",
        user_id=user_id,
        engine=engine,
        outcome="success",
        transaction_count=transaction_count,
        account_count=account_count,
        duration_ms=round(duration_ms, 2),
        **result_fields,
    )
