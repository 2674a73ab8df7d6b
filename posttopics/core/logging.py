"""Structured logging configuration using dictConfig."""
import logging
import logging.config
import sys
from typing import Dict, Any

from .settings import get_settings

# Third-party loggers kept quieter than the application
LIBRARY_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "httpx": "WARNING",
    "httpcore": "WARNING",
}


class ServiceNameFilter(logging.Filter):
    """Stamp every record with the name of the running service."""

    def __init__(self, service_name: str = "posttopics"):
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service_name
        return True


def get_logging_config(service_name: str = None, level: str = None) -> Dict[str, Any]:
    """
    Get logging configuration dictionary.

    ``level`` overrides the configured log level for the application
    logger and the console handler.
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    use_json = settings.environment == "production"

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "service": {
                "()": ServiceNameFilter,
                "service_name": service_name or "posttopics",
            }
        },
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(service)s %(name)s %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
                "rename_fields": {"asctime": "timestamp", "levelname": "level"},
            },
            "console": {
                "format": "%(asctime)s [%(service)s] [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "json" if use_json else "console",
                "filters": ["service"],
                "stream": sys.stdout
            }
        },
        "loggers": {
            "posttopics": {
                "level": level,
                "handlers": ["console"],
                "propagate": False
            }
        },
        "root": {
            "level": level,
            "handlers": ["console"]
        }
    }

    for name, library_level in LIBRARY_LEVELS.items():
        config["loggers"][name] = {
            "level": library_level,
            "handlers": ["console"],
            "propagate": False
        }

    return config


def setup_logging(service_name: str = None, level: str = None) -> None:
    """Configure structured logging using dictConfig."""
    logging.config.dictConfig(get_logging_config(service_name, level))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
