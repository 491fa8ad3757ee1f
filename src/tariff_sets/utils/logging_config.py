"""
Logging for the tariff sets pipeline.

Library modules only ask for a named logger. The console script configures the
root logger once, in ``pipeline.main``: a rotating file under ``logs/`` in the
working directory (or ``TARIFF_SETS_LOG_DIR``) and stdout, colored on a terminal.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_LEVEL = "INFO"
LOG_FILE_NAME = "tariff_sets.log"

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
CONSOLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

LEVEL_COLORS = {
    logging.DEBUG: "\x1b[34m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[41m",
}
RESET = "\x1b[0m"

# Handlers installed by setup_logging, so a second call can replace exactly these
_installed_handlers = []


class ColoredFormatter(logging.Formatter):
    """Colors each line by level when the stream is a terminal."""

    def __init__(self, fmt=None, datefmt=None, stream=None):
        super().__init__(fmt, datefmt)
        stream = stream if stream is not None else sys.stdout
        self.use_color = hasattr(stream, "isatty") and stream.isatty()

    def format(self, record):
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if self.use_color and color:
            return f"{color}{message}{RESET}"
        return message


def default_log_dir() -> Path:
    return Path(os.environ.get("TARIFF_SETS_LOG_DIR", Path.cwd() / "logs"))


def setup_logging(log_level=None, log_dir=None):
    """
    Configure the root logger with a rotating file handler and a console handler.

    Calling it again replaces the handlers it installed earlier; handlers added
    by anyone else are left alone.

    Args:
        log_level (str, optional): Level name. Defaults to the LOG_LEVEL
            environment variable, then INFO. Unknown names fall back to INFO.
        log_dir (str | Path, optional): Directory for the log file. Defaults to
            TARIFF_SETS_LOG_DIR, then ./logs.

    Returns:
        logging.Logger: The root logger.
    """
    level_name = (log_level or os.environ.get("LOG_LEVEL", DEFAULT_LOG_LEVEL)).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    log_dir = Path(log_dir) if log_dir is not None else default_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    for handler in _installed_handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    file_handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, stream=sys.stdout))

    for handler in (file_handler, console_handler):
        handler.setLevel(level)
        root_logger.addHandler(handler)
        _installed_handlers.append(handler)
    root_logger.setLevel(level)

    root_logger.info(f"Logging initialized at level {level_name} ({log_dir / LOG_FILE_NAME})")
    return root_logger


def get_logger(name):
    """Logger for a module (pass ``__name__``). Does not configure handlers."""
    return logging.getLogger(name)
