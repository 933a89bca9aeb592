"""
Logging — stderr diagnostics for evtq

All modules log through ``logging.getLogger(__name__)`` under the ``evtq``
namespace. The CLI calls configure_logging() once; library users can attach
their own handlers instead.

Line format mirrors the tool's historical console output:
    " [.] message"  for debug/info
    " [!] message"  for warnings and errors
"""

import logging
import sys
from typing import Optional, TextIO

LOGGER_NAME = "evtq"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def level_value(level: str) -> int:
    """Return the numeric logging level for a level name (default WARNING)."""
    return _LEVELS.get((level or "warning").lower(), logging.WARNING)


def level_for_verbosity(verbosity: int) -> int:
    """Map the count of -v flags to a logging level."""
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING


class ConsoleFormatter(logging.Formatter):
    """Prefix records with [.] or [!] depending on severity."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = " [!]" if record.levelno >= logging.WARNING else " [.]"
        return f"{prefix} {super().format(record)}"


def configure_logging(
    verbosity: int = 0,
    stream: Optional[TextIO] = None,
    level: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the ``evtq`` logger to write to stderr.

    Args:
        verbosity: Number of -v flags (0 = warnings only)
        stream: Destination stream (default: sys.stderr)
        level: Explicit level name, overrides verbosity when given

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_evtq_console", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(ConsoleFormatter("%(message)s"))
    handler._evtq_console = True
    logger.addHandler(handler)
    logger.setLevel(level_value(level) if level else level_for_verbosity(verbosity))
    logger.propagate = False
    return logger
