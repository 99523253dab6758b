"""
Structured Logging Module

Structured JSON logging for the fetch engine. The fetcher binds the fields
identifying one completion fetch (client request id, engine, ui kind) for
the duration of the request, so every lifecycle event it logs carries them.

Pattern: Structured logging for observability
Pattern: Singleton configuration (configure once at startup)
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Generator, Optional, TextIO

import structlog
from structlog.types import Processor


_configured: bool = False

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


# =============================================================================
# Fetch Context
# =============================================================================


@contextmanager
def fetch_context(request_id: str, **fields: Any) -> Generator[None, None, None]:
    """
    Bind the fields of one completion fetch to every event logged inside.

    None-valued fields are not bound. Previous bindings are restored on exit,
    so nested fetches in one task do not leak into each other.

    Example:
        >>> with fetch_context("8a1b...", engine="copilot-codex", ui_kind="ghostText"):
        ...     get_logger(__name__).info("completion request sent")
    """
    bound = {key: value for key, value in fields.items() if value is not None}
    with structlog.contextvars.bound_contextvars(request_id=request_id, **bound):
        yield


# =============================================================================
# Singleton Configuration
# =============================================================================


def configure_logging(
    level: str = "INFO",
    stream: Optional[TextIO] = None,
    force: bool = False,
) -> None:
    """
    Configure structlog for the process.

    Subsequent calls are no-ops unless force=True.

    Args:
        level: Default log level (DEBUG, INFO, WARNING, ERROR)
        stream: Output stream (default: sys.stdout)
        force: Reconfigure even when already configured
    """
    global _configured

    if _configured and not force:
        return

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS.get(level.upper(), logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=False,
    )

    _configured = True


# =============================================================================
# Logger Factory
# =============================================================================


def get_logger(name: str, level: str = "INFO") -> structlog.BoundLogger:
    """
    Get a structured logger, configuring structlog on first use.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("completion request sent", url=url)
    """
    configure_logging(level=level)
    return structlog.get_logger().bind(logger=name)
