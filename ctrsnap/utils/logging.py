"""Structured logging setup."""

import logging
import sys
from typing import Optional

import structlog

from ..config.logging import LoggingConfig


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure structlog over the stdlib root logger."""
    if config is None:
        from ..config import settings

        config = settings.logging

    level = getattr(logging, config.log_level.upper(), logging.INFO)

    # stdlib root logger first so filter_by_level sees the right level
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr, force=True)

    if config.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
