"""
adcraft.core.logging - Structured Logging Setup
=================================================

Every AdCraft module logs through structlog with a module-level
``logger = structlog.get_logger()`` and binds ``component=...`` on the
instances that need it. This module owns the one-time processor
configuration, called by the HTTP app factory (or by embedding code).

Processor Chain:
    merge_contextvars   → request-scoped context (request_id, session_id)
    add_log_level       → "level" key
    TimeStamper(iso)    → "timestamp" key
    ConsoleRenderer / JSONRenderer

Usage:
    >>> from adcraft.core.logging import configure_logging
    >>> configure_logging("DEBUG", json_logs=True)
"""

from __future__ import annotations

import logging

import structlog


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unknown names fall back to INFO.
        json_logs: Render JSON lines instead of coloured console output.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
