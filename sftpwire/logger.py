"""
Logging setup for the sftpwire command line tool.

The library modules only create named loggers; handlers are attached here,
once, by the CLI. Responses are delivered on the dispatcher's reader thread,
so the thread name is part of every record.
"""

import logging
import sys
from pathlib import Path

from .config import LogConfig

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(threadName)s - %(message)s"


def _log_handlers(config: LogConfig) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, mode="a", encoding="utf-8"))
    if config.console:
        # stdout is reserved for command output
        handlers.append(logging.StreamHandler(sys.stderr))
    return handlers


def setup_logging(config: LogConfig) -> None:
    """
    Route sftpwire's log records to the destinations in config.

    Args:
        config: LogConfig naming the level, an optional log file and whether
            to echo to stderr.

    Calling it again replaces the handlers from the previous call. Unknown
    level names fall back to INFO. paramiko is held at WARNING or above
    because it logs every transport packet at DEBUG.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for old in list(root_logger.handlers):
        root_logger.removeHandler(old)

    for handler in _log_handlers(config):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    logging.getLogger("paramiko").setLevel(max(level, logging.WARNING))
