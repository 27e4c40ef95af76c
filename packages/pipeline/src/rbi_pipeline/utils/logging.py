"""
utils/logging.py — structlog configuration shared by the jobs and the API.

One call to configure_logging() at process start (the CLI, the pipeline
run() functions and create_app() all make it) selects JSON or console
rendering from settings.log_format. Events flow through the standard library
so third-party loggers and ours end up on the same stream.

Usage:
    from rbi_pipeline.utils.logging import configure_logging, get_logger

    configure_logging()
    log = get_logger(__name__, pipeline="reconciliation")
    log = log.bind(run_id=run_id, dry_run=False)
    log.info("reconcile_level_complete", level="province", inserted=81)
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from rbi_shared.config import settings

# Chatty at INFO; kept at WARNING unless the run itself is at DEBUG
_QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "filelock")

_configured: tuple[str, str] | None = None


def configure_logging(
    log_level: str | None = None,
    log_format: str | None = None,
) -> None:
    """
    Configure structlog and the root logger. Calling again with the same
    level and format does nothing; a different pair reconfigures.
    """
    global _configured

    level_name = (log_level or settings.log_level).upper()
    fmt = log_format or settings.log_format
    if _configured == (level_name, fmt):
        return
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger().setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)

    if fmt == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    _configured = (level_name, fmt)


def get_logger(name: str, **initial_values: Any) -> structlog.BoundLogger:
    """Logger for *name* with *initial_values* bound into every event."""
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger  # type: ignore[return-value]
