"""Structured logging setup shared by the API and the CLI scripts."""
import logging
import sys

import structlog

from docqa import config


def configure_logging(level: str = None, fmt: str = None) -> None:
    """Configure stdlib logging and structlog.

    Args:
        level: Log level name (default from config)
        fmt: "json" or "console" (default from config)
    """
    level = (level or config.LOG_LEVEL).upper()
    fmt = fmt or config.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level, logging.INFO),
    )

    renderer = (
        structlog.dev.ConsoleRenderer()
        if fmt == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
