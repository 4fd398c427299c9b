"""
Logging setup for the attendance API.

Console output only; the format is plain text by default or one JSON object
per line when ATTENDANCE_LOG_FORMAT=json.
"""

import logging
import logging.config
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger import jsonlogger

from backend.config import LOG_FORMAT, LOG_LEVEL


class AttendanceJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that always carries timestamp, level and logger name."""

    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict[str, Any]):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        for key in ("facility_id", "child_id", "user_id", "action"):
            if hasattr(record, key):
                log_record[key] = getattr(record, key)


def build_logging_config(level: str = LOG_LEVEL, fmt: str = LOG_FORMAT) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            },
            "json": {
                "()": AttendanceJsonFormatter,
                "format": "%(timestamp)s %(level)s %(logger)s %(message)s",
            },
        },
        "handlers": {
            "console": {
                "level": level,
                "class": "logging.StreamHandler",
                "formatter": "json" if fmt == "json" else "standard",
            },
        },
        "loggers": {
            "backend": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
            "database": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["console"],
                "level": "INFO",
                "propagate": False,
            },
        },
    }


def setup_logging(level: str = LOG_LEVEL, fmt: str = LOG_FORMAT) -> logging.Logger:
    logging.config.dictConfig(build_logging_config(level, fmt))
    logger = logging.getLogger("backend")
    logger.info("Logging initialized with level %s (%s format)", level, fmt)
    return logger
