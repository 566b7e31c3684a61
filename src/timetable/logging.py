"""Structured logging for the timetable client.

Events go to stderr so scripts can keep stdout for their JSON output.
Modules log through get_logger(); scripts call setup_logging() once and
bind_session_context() once the user session is known.
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from src.timetable.models import SessionContext


def setup_logging(json_output: bool = False, log_level: str = "INFO") -> None:
    """Configure structlog rendering and level.

    Args:
        json_output: If True, one JSON object per event. If False, console format.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # requests reports connection problems through urllib3's stdlib logger
    urllib3_logger = logging.getLogger("urllib3")
    urllib3_logger.setLevel(max(numeric_level, logging.WARNING))
    if not urllib3_logger.handlers:
        urllib3_logger.addHandler(logging.StreamHandler(sys.stderr))


def bind_session_context(context: "SessionContext") -> None:
    """Attach the school and academic year to every subsequent log event."""
    structlog.contextvars.bind_contextvars(
        school_id=context.school_id,
        academic_year_id=context.academic_year_id,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
