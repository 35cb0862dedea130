"""
Logging configuration for Message Unifier.

Configures the root logger with dictConfig, so it can be called again
(from the CLI, then from tests) without stacking handlers.

Environment Variables:
    LOG_LEVEL: Root level name, case-insensitive (INFO when unset or unknown).
    MESSAGE_UNIFIER_LOG_FILE: Optional file to also write logs to (rotated).

Usage:
    from message_unifier.logger_config import setup_logging
    setup_logging()

    # Show every skipped record while debugging one export:
    setup_logging(level=logging.INFO, show_skipped_records=True)
"""

import logging
import logging.config
import os
from typing import Optional

ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_LOG_FILE = "MESSAGE_UNIFIER_LOG_FILE"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
# Parallel imports interleave; the thread name tells sources apart
THREADED_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"

# Logger that reports individual malformed records at DEBUG
SKIPPED_RECORDS_LOGGER = "message_unifier.importers.base"

LOG_FILE_MAX_BYTES = 10_485_760  # 10 MB
LOG_FILE_BACKUPS = 5


def get_log_level() -> int:
    """
    Level named by LOG_LEVEL, or INFO when it is unset or not a level name.
    """
    level_name = os.getenv(ENV_LOG_LEVEL, "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        return logging.INFO
    return level


def setup_logging(
    level: Optional[int] = None,
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
    threaded: bool = False,
    show_skipped_records: bool = False,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level. If None, reads LOG_LEVEL (default: INFO).
        format_string: Custom format string; overrides `threaded`.
        log_file: File to write logs to as well, rotated at 10 MB with five
            backups. If None, reads MESSAGE_UNIFIER_LOG_FILE.
        threaded: Include the thread name, for parallel imports.
        show_skipped_records: Log every skipped malformed record even when
            the overall level is above DEBUG.
    """
    if level is None:
        level = get_log_level()
    if format_string is None:
        format_string = THREADED_FORMAT if threaded else DEFAULT_FORMAT
    if log_file is None:
        log_file = os.getenv(ENV_LOG_FILE) or None

    handler_level = logging.DEBUG if show_skipped_records else level
    handlers: dict = {
        "console": {
            "class": "logging.StreamHandler",
            "level": handler_level,
            "formatter": "standard",
            "stream": "ext://sys.stdout",
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": handler_level,
            "formatter": "standard",
            "filename": log_file,
            "maxBytes": LOG_FILE_MAX_BYTES,
            "backupCount": LOG_FILE_BACKUPS,
            "encoding": "utf-8",
        }

    config: dict = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": format_string,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": {},
        "root": {
            "level": level,
            "handlers": list(handlers),
        },
    }
    if show_skipped_records:
        config["loggers"][SKIPPED_RECORDS_LOGGER] = {"level": logging.DEBUG}

    logging.config.dictConfig(config)
