"""
Structured logging setup for Switchyard.

Configures structlog for JSON-formatted structured logging. Every log
line includes timestamp, level, service name, and event. Per-resource
context (resource, kind, scope) is bound at the call site.
"""

from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(
    level: str = "INFO",
    *,
    service: str = "switchyard",
    json: bool = True,
) -> None:
    """Configure stdlib logging and structlog processors.

    Args:
        level: Minimum level name (``DEBUG``, ``INFO``, ...).
        service: Service name bound to every log line.
        json: Render as JSON when ``True``, console-friendly otherwise.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service)
