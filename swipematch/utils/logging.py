"""
Structured logging for the SwipeMatch engine.

Every record carries the service name and environment. Request handlers
bind per-request values such as `request_id` with `log_context`; they are
merged into every record emitted inside the block, including records
from services that never see the request.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from swipematch.config import settings
from swipematch.utils.errors import SwipeMatchError


def add_service_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp records with the service name and environment unless already set."""
    event_dict.setdefault("app", settings.APP_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def build_processors(json_logs: bool) -> list[Processor]:
    """Return the processor chain, ending in a JSON or console renderer."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    processors.append(structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer())
    return processors


def configure_logging(json_logs: Optional[bool] = None) -> None:
    """
    Route structlog through the standard library logger at `LOG_LEVEL`.

    Args:
        json_logs (Optional[bool]): Force JSON output on or off. By default
            development gets the console renderer and every other
            environment gets JSON.
    """
    if json_logs is None:
        json_logs = settings.ENVIRONMENT.lower() != "development"

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        stream=sys.stdout,
    )
    structlog.configure(
        processors=build_processors(json_logs),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name).bind(**initial_values)  # type: ignore


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """
    Bind values to every record logged in the current task until the block exits.

    Previous values of the same keys are restored on exit, so blocks nest.
    """
    tokens = structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


def log_error(
    logger: structlog.stdlib.BoundLogger,
    error: Exception,
    message: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log an exception with its type, message and engine error context.

    Engine errors add `error_kind`, `status_code` and `error_details`. Client
    errors (4xx) are logged as warnings without a traceback; everything else
    is logged as an error with `exc_info`.

    Args:
        logger (structlog.stdlib.BoundLogger): The logger instance to use.
        error (Exception): The exception to log.
        message (Optional[str]): Event name. Defaults to "An error occurred".
        extra (Optional[Dict[str, Any]]): Additional context. Not modified.
    """
    context = dict(extra or {})
    context["error_type"] = type(error).__name__
    context["error_message"] = str(error)
    event = message or "An error occurred"

    if isinstance(error, SwipeMatchError):
        context["error_kind"] = error.kind
        context["status_code"] = error.status_code
        context["error_details"] = error.details
        if error.status_code < 500:
            logger.warning(event, **context)
            return

    logger.error(event, **context, exc_info=error)
