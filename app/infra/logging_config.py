"""Process-wide logging setup shared by the API and management scripts."""

from __future__ import annotations

import logging
import logging.config

from app.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class LoggingConfig:
    """Apply a dictConfig once per process using the configured log level."""

    _configured = False

    def __init__(self, level: str | None = None) -> None:
        if LoggingConfig._configured:
            return
        level = (level or get_settings().log_level).upper()
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {"default": {"format": LOG_FORMAT}},
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "formatter": "default",
                    }
                },
                "root": {"handlers": ["console"], "level": level},
                "loggers": {
                    "uvicorn.access": {"level": "WARNING"},
                    "sqlalchemy.engine": {"level": "WARNING"},
                },
            }
        )
        LoggingConfig._configured = True
