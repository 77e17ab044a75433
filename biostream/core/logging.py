"""
Structured logging for the biostream pipeline.

Every module logs through `get_logger(__name__)` with snake_case event names
and key/value context. Events emitted while a streaming session is active
carry its `session_id` via structlog's context variables.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog.types import Processor

from biostream.core.config import settings


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Log level name (default: settings.log_level)
        log_format: "json" or "console" (default: settings.log_format)
    """
    level_name = (level or settings.log_level).upper()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(log_format or settings.log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name),
        force=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured logger instance

    Example:
        logger = get_logger(__name__)
        logger.info("payload_rejected", payload_len=13, record_size=7)
    """
    return structlog.get_logger(name)


@contextmanager
def session_context(session_id: str, **fields: Any) -> Iterator[None]:
    """Attach `session_id` (and any extra fields) to events logged inside the block."""
    with structlog.contextvars.bound_contextvars(session_id=session_id, **fields):
        yield


configure_logging()
