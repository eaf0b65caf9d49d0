"""Structured logging configuration using structlog.

Logs go to stderr so stdout stays free for progress output. Every record
emitted during a deploy or reset carries the ``command`` and ``run_id``
bound by :func:`bind_run`.
"""

from __future__ import annotations

import logging
import sys
import uuid

import structlog

_RENDERERS = {
    "json": lambda: structlog.processors.JSONRenderer(),
    "console": lambda: structlog.dev.ConsoleRenderer(colors=False),
}


def setup_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog with a JSON (default) or console renderer."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    renderer = _RENDERERS.get(fmt, _RENDERERS["json"])()

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


def bind_run(command: str) -> str:
    """Tag all subsequent log records in this context with a fresh run id."""
    run_id = uuid.uuid4().hex[:12]
    structlog.contextvars.bind_contextvars(command=command, run_id=run_id)
    return run_id


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
