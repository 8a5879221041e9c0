"""
Console logging for deployment runs.

Log lines are rendered as `[INFO] message`, `[WARN] message` and
`[ERROR] message`, colored when the stream is a terminal. Debug and info
lines go to stdout; warnings and errors go to stderr.
"""

import logging
import os
import sys

GREEN = "\033[0;32m"
YELLOW = "\033[1;33m"
RED = "\033[0;31m"
NC = "\033[0m"

LEVEL_TAGS = {
    logging.DEBUG: ("DEBUG", NC),
    logging.INFO: ("INFO", GREEN),
    logging.WARNING: ("WARN", YELLOW),
    logging.ERROR: ("ERROR", RED),
    logging.CRITICAL: ("ERROR", RED),
}

PACKAGE_LOGGER = "multitier_deploy"


def colors_enabled(stream=None) -> bool:
    stream = stream or sys.stdout
    if os.getenv("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def colorize(text: str, color: str) -> str:
    if not colors_enabled():
        return text
    return f"{color}{text}{NC}"


class ColorFormatter(logging.Formatter):
    """Prefix each record with its level tag, colored if requested."""

    def __init__(self, use_color: bool = True):
        super().__init__("%(message)s")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        tag, color = LEVEL_TAGS.get(record.levelno, (record.levelname, NC))
        if self.use_color:
            return f"{color}[{tag}]{NC} {message}"
        return f"[{tag}] {message}"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach the console handlers to the package logger (once)."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        out_handler = logging.StreamHandler(sys.stdout)
        out_handler.addFilter(lambda record: record.levelno < logging.WARNING)
        out_handler.setFormatter(ColorFormatter(use_color=colors_enabled(sys.stdout)))
        logger.addHandler(out_handler)

        err_handler = logging.StreamHandler(sys.stderr)
        err_handler.setLevel(logging.WARNING)
        err_handler.setFormatter(ColorFormatter(use_color=colors_enabled(sys.stderr)))
        logger.addHandler(err_handler)

    return logger


def print_section(title: str) -> None:
    """Print a banner separating deployment stages."""
    rule = "=" * 40
    print()
    print(colorize(rule, GREEN))
    print(colorize(title, GREEN))
    print(colorize(rule, GREEN))
    print()
