"""
Logging utilities built on loguru.

All modules obtain their logger through ``get_logger(__name__)`` so that the
module name shows up in every record.
"""

import sys
import traceback

from loguru import logger as _logger

from geminiproxy.models.enums import LogLevel

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

_LEVEL_MAP = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}

_logger.configure(extra={"name": "geminiproxy"})


def get_logger(name: str):
    """Get a logger bound to a module name."""
    return _logger.bind(name=name)


def configure_logging(level: LogLevel = LogLevel.INFO) -> None:
    """
    Replace all loguru sinks with a single stderr sink.

    Must be called once at process startup, before the event loop runs.
    """
    level = LogLevel(level)
    full = level == LogLevel.FULL

    _logger.remove()
    _logger.add(
        sys.stderr,
        level=_LEVEL_MAP[level],
        format=LOG_FORMAT,
        backtrace=full,
        diagnose=full,
        enqueue=False,
    )


def format_traceback(e: BaseException) -> str:
    """Format an exception with its traceback."""
    return "".join(traceback.format_exception(type(e), e, e.__traceback__))
