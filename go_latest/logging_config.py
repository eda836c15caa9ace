"""
Centralized logging configuration for go-latest.

Provides console and file output for per-program outcome lines and
diagnostics. Each outcome is a single log record so lines from parallel
workers never interleave.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional


LOGGER_NAME = "go_latest"

# Global logger instance
_logger: Optional[logging.Logger] = None


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    verbose: bool = False,
    quiet: bool = False,
    propagate: bool = False,
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        verbose: Enable verbose (DEBUG) output
        quiet: Console shows warnings and errors only, on stderr
        propagate: Allow log propagation (useful for testing)

    Returns:
        Configured logger instance
    """
    global _logger

    if verbose:
        effective_level = "DEBUG"
    elif quiet:
        effective_level = "WARNING"
    else:
        effective_level = level.upper()

    logger = logging.getLogger(LOGGER_NAME)
    # The file handler records everything, the console filters by level
    logger.setLevel(logging.DEBUG if log_file else getattr(logging, effective_level))
    logger.handlers.clear()

    # Quiet mode keeps stdout free for machine-readable output
    stream = sys.stderr if quiet else sys.stdout
    console_handler = logging.StreamHandler(stream)
    console_handler.setLevel(getattr(logging, effective_level))
    use_colors = stream.isatty() and os.environ.get("GO_LATEST_COLOR", "1") == "1"
    console_handler.setFormatter(ColoredFormatter("%(message_colored)s", use_colors=use_colors))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(threadName)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(file_handler)

    logger.propagate = propagate

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """
    Get the configured logger instance.

    If logging hasn't been set up, initializes with defaults.
    """
    global _logger
    if _logger is None:
        _logger = setup_logging()
    return _logger


class ColoredFormatter(logging.Formatter):
    """
    Formatter that colors whole lines by level.

    Outcome lines are INFO and stay uncolored so they read like plain
    command output; only warnings, errors and debug chatter get a color.
    """

    COLORS = {
        "DEBUG": "\033[36m",       # Cyan
        "WARNING": "\033[33m",     # Yellow
        "ERROR": "\033[31m",       # Red
        "CRITICAL": "\033[1;31m",  # Bold Red
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        color = self.COLORS.get(record.levelname, "") if self.use_colors else ""
        if color:
            record.message_colored = f"{color}{message}{self.RESET}"
        else:
            record.message_colored = message
        return super().format(record)
