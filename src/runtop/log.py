"""Structlog configuration for runtop.

Library modules only call get_logger(). Applications call configure() once
at startup to route events through stdlib logging to stderr.
"""

import logging
import sys
from pathlib import Path

import structlog


def configure(debug: bool = False, stream=None, path: Path | None = None) -> None:
    """Configure structlog with a key/value renderer.

    Args:
        debug: Log at DEBUG level instead of INFO.
        stream: Destination stream (defaults to stderr so reports on stdout stay clean).
        path: Log to this file instead of a stream.
    """
    level = logging.DEBUG if debug else logging.INFO

    if path is not None:
        handler: logging.Handler = logging.FileHandler(path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=False),
            foreign_pre_chain=[
                structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
                structlog.processors.add_log_level,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, optionally bound to a module name."""
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)
