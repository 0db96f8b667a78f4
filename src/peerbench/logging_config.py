"""Logging configuration and utilities for peerbench."""

import logging
import os
import sys
import traceback
from pathlib import Path
from typing import Any, MutableMapping, Optional, Tuple

from colorama import Fore, Style, init as colorama_init

from .exceptions import PeerBenchException

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class StructuredFormatter(logging.Formatter):
    """Formatter that adds structured context to log records."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with structured context."""
        # Lift exception context into ctx_* attributes
        if record.exc_info and isinstance(record.exc_info[1], PeerBenchException):
            exc = record.exc_info[1]
            if exc.context:
                for key, value in exc.context.items():
                    setattr(record, f"ctx_{key}", value)

        return super().format(record)


class ColorFormatter(StructuredFormatter):
    """Structured formatter that colours the whole line by level."""

    COLORS = {
        logging.DEBUG: Style.DIM + Fore.BLUE,
        logging.INFO: Fore.CYAN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Style.BRIGHT + Fore.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, "")
        message = super().format(record)
        if color:
            return f"{color}{message}{Style.RESET_ALL}"
        return message


class ContextLogger(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter that prefixes every message with a unit of work context."""

    def __init__(self, logger: logging.Logger, context: str):
        super().__init__(logger, {"context": context})
        self.context = context

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"{self.context}: {msg}", kwargs


def should_use_color(stream: Any = None) -> bool:
    """Colour only interactive terminals, and never when NO_COLOR is set."""
    stream = stream or sys.stderr
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty()) and os.getenv("NO_COLOR") is None


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
    use_color: Optional[bool] = None,
) -> bool:
    """Configure the root logger for peerbench.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        format_string: Custom format string (uses default if None)
        use_color: Force colours on or off; auto-detected when None

    Returns:
        Whether coloured console output is enabled.
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    format_string = format_string or DEFAULT_FORMAT
    if use_color is None:
        use_color = should_use_color()

    console_formatter: logging.Formatter
    if use_color:
        colorama_init()
        console_formatter = ColorFormatter(format_string)
    else:
        console_formatter = StructuredFormatter(format_string)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(numeric_level)
    root.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(StructuredFormatter(format_string))
        file_handler.setLevel(numeric_level)
        root.addHandler(file_handler)

    return use_color


def get_logger(name: str, context: Optional[str] = None) -> logging.Logger | ContextLogger:
    """Get a module logger, optionally bound to a unit of work context."""
    logger = logging.getLogger(name)
    if context is None:
        return logger
    return ContextLogger(logger, context)


def describe_error(exc: BaseException, is_dev: bool) -> str:
    """Full traceback text in development, the message alone in production."""
    if not is_dev:
        return str(exc)

    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip()


__all__ = [
    "StructuredFormatter",
    "ColorFormatter",
    "ContextLogger",
    "should_use_color",
    "configure_logging",
    "get_logger",
    "describe_error",
]
