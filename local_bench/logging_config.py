"""Logging configuration for the local bench.

The console gets short ``LEVEL: message`` lines, WARNING and above unless
debugging. A log file, when requested, always records everything at DEBUG
with timestamps and logger names, which is what bug reports should attach.
"""

import logging
import os
import sys
from pathlib import Path

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Client libraries that log every HTTP request at DEBUG
QUIET_LOGGERS = ("urllib3", "kubernetes")


def debug_requested() -> bool:
    """Return True when LOG_LEVEL=debug is set in the environment."""
    return os.environ.get("LOG_LEVEL", "").lower() == "debug"


def setup_logging(level: str = "INFO", log_file: Path | None = None, verbose: bool = False) -> None:
    """Configure the root logger for a CLI invocation.

    Calling it again replaces the previous handlers, so a command can raise
    the level after its settings are loaded.

    Args:
        level: Root logging level when not debugging
        log_file: Optional path to a DEBUG log file
        verbose: Log DEBUG to the console, with full context
    """
    debug = verbose or debug_requested()

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug or log_file else getattr(logging, level.upper()))
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        if getattr(handler, "local_bench_owned", False):
            handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    if debug:
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    else:
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
        except OSError as e:
            root_logger.warning(f"Cannot write log file {log_file}: {e}")
        else:
            file_handler.local_bench_owned = True
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
            root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
