"""Structured logging configuration.

Sets up structlog so every step logs a snake_case event name plus
key/value context, e.g.:
  {"event": "asset_uploaded", "release_id": 42, "asset": "build.tar.gz"}

In CI the console renderer keeps job logs readable; the JSON renderer is
there for runners that ship logs to an aggregator.

Usage:
    from release_uploader.logging_config import setup_logging, get_logger

    setup_logging(log_level="INFO")
    logger = get_logger(__name__)
    logger.info("release_resolved", tag="v1.0.0", release_id=42)
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog


def setup_logging(
    environment: str | None = None,
    log_level: str | None = None,
) -> None:
    """Configure structured logging for one run of the action.

    Renders events with the console renderer, which is what shows up in
    the job log. ``environment="production"`` switches to JSON lines.

    Args:
        environment: "production" selects JSON output. Reads from
                     ENVIRONMENT env var if not provided.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Reads from LOG_LEVEL env var if not provided.
    """
    env = environment or os.environ.get("ENVIRONMENT", "development")
    level = log_level or os.environ.get("LOG_LEVEL", "INFO")

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if env == "production":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        # stderr keeps stdout free for the action's own output
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Standard library logging for third-party libs (httpx)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A structlog bound logger
    """
    return structlog.get_logger(name)
