"""Structured logging configuration using structlog.

Engine modules log through plain ``logging`` loggers wrapped by structlog, so
they stay silent until an application calls ``setup_logging``. From then on
engine events and server events share one formatter: JSON in production,
the console renderer elsewhere.
"""

import logging
import sys

import structlog
from structlog.typing import Processor

from contextualize.config import Settings, get_settings

ENGINE_LOGGER = "contextualize.engine"


def select_renderer(settings: Settings, level: str) -> Processor:
    """Pick the final renderer for the given settings."""
    if settings.is_production:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=level == "DEBUG")


def setup_logging(level: str | None = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Overrides ``Settings.log_level`` for this process
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level),
    )

    # Identifier and namespace bookkeeping is debug noise in production
    engine_level = logging.INFO if settings.is_production else getattr(logging, level)
    logging.getLogger(ENGINE_LOGGER).setLevel(max(engine_level, getattr(logging, level)))

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            select_renderer(settings, level),
        ],
    )

    for handler in logging.root.handlers:
        handler.setFormatter(formatter)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance with the given name."""
    return structlog.get_logger(name)
