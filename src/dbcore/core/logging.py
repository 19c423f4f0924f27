"""structlog configuration for dbcore.

Everything is written to stderr; stdout is reserved for command output.
Level and renderer can be overridden with DBCORE_LOG_LEVEL and
DBCORE_LOG_FORMAT (``console`` or ``json``).
"""

import logging
import os
import sys
from typing import Any

import structlog

LOG_LEVEL_ENV = "DBCORE_LOG_LEVEL"
LOG_FORMAT_ENV = "DBCORE_LOG_FORMAT"

_LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class _StderrLoggerFactory:
    """Build each PrintLogger against whatever sys.stderr is right now.

    Test runners swap sys.stderr per invocation, so a handle captured at
    configure() time goes stale.
    """

    def __call__(self, *args: Any, **kwargs: Any) -> structlog.PrintLogger:
        return structlog.PrintLogger(file=sys.stderr)


def _renderer(fmt: str) -> Any:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging(verbose: bool = False, level: str | None = None) -> None:
    """Configure structlog.

    Args:
        verbose: DEBUG instead of INFO.
        level: Explicit level name; wins over ``verbose`` and the environment.
    """
    env_level = os.environ.get(LOG_LEVEL_ENV, "").lower() or None
    log_level = level or ("debug" if verbose else env_level or "info")
    if log_level not in _LOG_LEVELS:
        log_level = "info"
    fmt = os.environ.get(LOG_FORMAT_ENV, "console").lower()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _renderer(fmt),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_LOG_LEVELS[log_level]),
        context_class=dict,
        logger_factory=_StderrLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None, **bindings: Any) -> Any:
    """Return a structlog logger bound with ``logger=name`` and ``bindings``.

    Call inside functions only, never at import time, so the logger picks
    up the configuration from setup_logging().
    """
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    if bindings:
        logger = logger.bind(**bindings)
    return logger
