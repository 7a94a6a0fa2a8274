"""structlog setup for the scanwatch CLI and for applications embedding it.

Events go to stderr (stdout belongs to CLI output) as JSON, or as coloured
console lines when ENVIRONMENT is local. Every event carries the service,
env and version fields.

    from scanwatch.integrations.logging_setup import configure_logging
    configure_logging("debug")

Modules log with ``structlog.get_logger(__name__)`` and snake_case event
names, e.g. ``log.info("job_monitor_started", job_id="scan-1")``.
"""
from __future__ import annotations

import logging
import sys

import structlog

from scanwatch import __version__
from scanwatch.config import settings


def configure_logging(level: str | None = None, pretty: bool | None = None) -> None:
    """Configure structlog once at startup.

    Args:
        level: Level name such as ``"DEBUG"``. Defaults to ``settings.LOG_LEVEL``.
        pretty: Force console (True) or JSON (False) rendering. Defaults to
                console rendering for local environments.
    """
    level_name = (level or settings.LOG_LEVEL or "INFO").upper()
    log_level = getattr(logging, level_name, logging.INFO)
    use_pretty = settings.is_local if pretty is None else pretty

    structlog.contextvars.bind_contextvars(
        service=settings.SCANWATCH_SERVICE,
        env=settings.ENVIRONMENT,
        version=__version__,
    )
    structlog.configure(
        processors=_build_processors(pretty=use_pretty),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        # Module-level loggers must pick up a later configure_logging() call
        cache_logger_on_first_use=False,
    )
    # httpx reports every request at INFO through stdlib logging
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

    structlog.get_logger(__name__).debug("logging_configured", level=level_name, pretty=use_pretty)


def _build_processors(pretty: bool) -> list:
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if pretty:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return processors
