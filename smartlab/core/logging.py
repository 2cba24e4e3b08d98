"""Centralized logging configuration.

One application logger (``smartlab``) with two child streams, ``smartlab.security``
and ``smartlab.audit``. Every stream writes to the console; when file logging is
enabled each one also gets its own daily-rotated JSON-lines file with its own
retention.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from smartlab.config import settings


LOGGER_NAME = "smartlab"
SECURITY_LOGGER_NAME = f"{LOGGER_NAME}.security"
AUDIT_LOGGER_NAME = f"{LOGGER_NAME}.audit"


class JsonLineFormatter(logging.Formatter):
    """Render a record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": settings.SERVICE_TAG,
            "message": record.getMessage(),
        }
        event_data = getattr(record, "event_data", None)
        if event_data:
            entry.update(event_data)
        if record.exc_info:
            entry["stack"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _file_handler(filename: str, retention_days: int, level: int) -> TimedRotatingFileHandler:
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = TimedRotatingFileHandler(
        log_dir / filename,
        when="midnight",
        backupCount=retention_days,
        encoding="utf-8",
        utc=True,
    )
    handler.setLevel(level)
    handler.setFormatter(JsonLineFormatter())
    return handler


def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""

    # Get log level from settings
    level_name = settings.LOG_LEVEL.upper()
    level = getattr(logging, level_name, logging.INFO)

    # Create logger
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Prevent duplicate handlers
    if not logger.handlers:
        # Console handler
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)

        # Format
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if settings.LOG_TO_FILE:
            logger.addHandler(
                _file_handler("application.log", settings.LOG_RETENTION_GENERAL_DAYS, level)
            )
            logger.addHandler(
                _file_handler("error.log", settings.LOG_RETENTION_ERROR_DAYS, logging.ERROR)
            )

            security_handler = _file_handler(
                "security.log", settings.LOG_RETENTION_SECURITY_DAYS, logging.DEBUG
            )
            security_handler.addFilter(logging.Filter(SECURITY_LOGGER_NAME))
            logger.addHandler(security_handler)

            audit_handler = _file_handler(
                "audit.log", settings.LOG_RETENTION_AUDIT_DAYS, logging.DEBUG
            )
            audit_handler.addFilter(logging.Filter(AUDIT_LOGGER_NAME))
            logger.addHandler(audit_handler)

    logger.debug(f"Logging configured with level: {level_name}")

    return logger


# Create the global logger instances
logger = setup_logging()
security_logger = logging.getLogger(SECURITY_LOGGER_NAME)
audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
