"""
structlog setup for the catalog.

Every component logs through a logger bound with `component=`
(catalog_index, ownership_reconciler, enrichment_scheduler, provider,
search_engine), and events carry game_id or user_id so an enrichment
run or an ownership sync can be followed per game. JSON output is for
the service log pipeline, console output for local CLI runs.
"""

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from structlog.types import Processor

from gsplay_catalog.config import LoggingConfig, get_settings


def setup_logging(config: LoggingConfig | None = None) -> None:
    """
    Install the catalog's structlog processors.

    Called once when the CLI module loads. The level also applies to the
    standard library loggers used by SQLAlchemy and httpx, so engine echo
    and request logs share the output stream.

    Args:
        config: Logging section to apply (LOG_* settings if None)
    """
    logging_config = config or get_settings().logging

    # Applied before the renderer in both formats
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if logging_config.include_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if logging_config.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(logging_config.level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # SQLAlchemy and httpx log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, logging_config.level),
    )


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Bound logger for a catalog component.

    Args:
        name: Module name, usually __name__
        **initial_context: Values bound to every event, e.g. component="scheduler"

    Returns:
        structlog.BoundLogger with the context applied

    Example:
        >>> logger = get_logger(__name__, component="ownership_reconciler")
        >>> logger.info("Ownership edge added", game_id="...", user_id="u1")
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
