"""Structured logging for kubemirror.

The long-running service logs JSON lines to stderr; the operator CLI asks
for the console renderer so humans can read the same events.
"""

from __future__ import annotations

import logging
import sys

import structlog

_VALID_LEVELS = ("debug", "info", "warning", "error")


def setup_logging(level: str = "info", json_output: bool = True) -> None:
    """Configure structlog processors and the minimum level.

    Args:
        level:       One of debug, info, warning, error. Unknown values fall
                     back to info.
        json_output: Render JSON (service mode) or coloured key/value pairs
                     (CLI mode).
    """
    log_level = getattr(logging, level.upper(), logging.INFO) if level.lower() in _VALID_LEVELS else logging.INFO

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str, **context: str) -> structlog.stdlib.BoundLogger:
    """Return a logger bound with a component name and optional fixed context.

    Watch loops bind ``kind=`` once so every line they emit carries it.
    """
    return structlog.get_logger(component=component, **context)  # type: ignore[return-value]
