"""Structured logging configuration using structlog."""

import logging
import sys
from pathlib import Path
from typing import TextIO

import structlog

_log_stream: TextIO | None = None


def setup_logging(level: str = "INFO", log_file: str | Path | None = None) -> None:
    """
    Configure structlog for the application.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ...).
        log_file: When set, JSON lines are appended to this file instead of
            writing to stderr. The dashboard owns the terminal, so it always
            logs to a file. An unwritable file falls back to stderr.
    """
    global _log_stream

    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    if _log_stream is not None:
        _log_stream.close()
        _log_stream = None

    renderer = structlog.dev.ConsoleRenderer(colors=False)
    factory = structlog.PrintLoggerFactory(file=sys.stderr)
    exception_processors = []
    if log_file is not None:
        path = Path(log_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            _log_stream = path.open("a", encoding="utf-8")
        except OSError:
            # If we can't create the log dir/file, continue with stderr only
            _log_stream = None
        else:
            renderer = structlog.processors.JSONRenderer()
            factory = structlog.WriteLoggerFactory(file=_log_stream)
            # JSON cannot carry exc_info=True; render the traceback as text
            exception_processors = [structlog.processors.format_exc_info]

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            *exception_processors,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=factory,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    """Get a named structlog logger."""
    return structlog.get_logger(name)
