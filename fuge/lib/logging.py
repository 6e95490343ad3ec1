"""
Structured logging configuration for Fuge.

Routes stdlib ``logging`` records through structlog so that module loggers
(``logging.getLogger(__name__)``) and ``structlog.get_logger()`` share one
output format: a colored console in dev mode, JSON lines otherwise.

Usage:
    from fuge.lib.logging import setup_logging

    setup_logging()  # once, at application startup
"""

import logging
import sys

import structlog

from fuge.config.settings import Settings, get_settings


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog and the root stdlib logger.

    Args:
        settings: Settings to read dev mode and level from (defaults to the
            process-wide settings).
    """
    settings = settings or get_settings()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: structlog.types.Processor
    if settings.dev_mode:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)

    structlog.configure(
        processors=[
            *shared_processors,
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
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.log_level, logging.INFO))

    for noisy_logger in ("httpx", "httpcore", "sqlalchemy.engine"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)
