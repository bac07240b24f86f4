"""
Structured logging configuration.

All dualsync modules log through ``structlog.get_logger(__name__)`` with
key/value events. This module wires the processor chain once per process:
JSON lines in production, a colored console renderer in development. Events go
to stderr so command output on stdout stays machine-readable.
"""

import logging
import os
import sys

import structlog


def configure_logging(level: str = 'INFO', json_format: bool = None,
                      cache_logger_on_first_use: bool = True) -> None:
    """
    Configure structlog for the process.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ...)
        json_format: Render JSON lines; defaults to True outside development
        cache_logger_on_first_use: Freeze bound loggers after first use. Tests
            pass False so ``structlog.testing.capture_logs`` can still intercept.
    """
    if json_format is None:
        json_format = os.getenv('FLASK_ENV') != 'development'

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if json_format:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True)
        ]

    log_level = getattr(logging, str(level).upper(), logging.INFO)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=cache_logger_on_first_use,
    )


def bind_run_context(**values) -> None:
    """Bind values (schema, run id, ...) onto every log event of the current context."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**values)
