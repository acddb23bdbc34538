"""Centralized logging setup for the batch document extraction service.

Configures the root logger once for the API server, the CLI and the
extraction worker threads, so every pipeline stage logs with the same
format and the thread that ran it.
"""

import logging
import sys
from pathlib import Path

# pdfminer (under pdfplumber) and Pillow log every parsed object at DEBUG.
_NOISY_LOGGERS = ("pdfminer", "PIL", "multipart")

_FORMAT = "%(asctime)s - %(name)s - [%(threadName)s] - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure the root logger with a standard format.

    Calling this more than once is a no-op, so the CLI, the API entry point
    and tests can all call it safely.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional file to receive a copy of the log stream.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    if root.handlers:
        return

    formatter = logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(numeric_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Get a named logger instance.

    Args:
        name: Logger name, typically ``__name__`` of the calling module.

    Returns:
        Configured logger instance.
    """
    return logging.getLogger(name)
