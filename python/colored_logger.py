import logging
import os
import sys
from typing import Optional, TextIO

# Between INFO (20) and WARNING (30), so --quiet can hide progress but keep results
PROGRESS_LEVEL = 22
SUCCESS_LEVEL = 25

logging.addLevelName(PROGRESS_LEVEL, "PROGRESS")
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")

DEFAULT_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Wraps each formatted line in the ANSI color of its level name."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[37m",
        "PROGRESS": "\033[34m",
        "SUCCESS": "\033[32;1m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[31;1m",
        "RESET": "\033[0m",
    }

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        stream: Optional[TextIO] = None,
    ):
        super().__init__(fmt or DEFAULT_FORMAT, datefmt or DEFAULT_DATEFMT)
        self.stream = stream

    def use_color(self) -> bool:
        """Colors only go to terminals, and never when NO_COLOR is set."""
        if os.environ.get("NO_COLOR"):
            return False
        isatty = getattr(self.stream or sys.stderr, "isatty", None)
        return bool(isatty and isatty())

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        if not self.use_color():
            return line

        color = self.COLORS.get(record.levelname)
        if color is None:
            return line
        return color + line + self.COLORS["RESET"]


def setup_colored_logging(
    level: int = logging.INFO, stream: Optional[TextIO] = None
) -> None:
    """
    Route all log output through one colored console handler.

    Args:
        level: Root logger level
        stream: Output stream (default: sys.stderr)
    """
    stream = stream or sys.stderr
    handler = logging.StreamHandler(stream)
    handler.setFormatter(ColoredFormatter(stream=stream))

    root = logging.getLogger()
    root.setLevel(level)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)


class EnhancedLogger:
    """Adds progress() and success() to a standard logger."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def progress(self, msg, *args, **kwargs):
        self._logger.log(PROGRESS_LEVEL, msg, *args, **kwargs)

    def success(self, msg, *args, **kwargs):
        self._logger.log(SUCCESS_LEVEL, msg, *args, **kwargs)

    # debug/info/warning/error/critical and the rest come from the wrapped logger
    def __getattr__(self, name):
        return getattr(self._logger, name)


def get_colored_logger(name: str) -> EnhancedLogger:
    """Return the logger for ``name`` with the PROGRESS and SUCCESS helpers."""
    return EnhancedLogger(logging.getLogger(name))
