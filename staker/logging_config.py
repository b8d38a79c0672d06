import logging
import logging.config
import os
import sys
from pathlib import Path
from typing import Optional, Union

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def build_logging_config(level: str = LOG_LEVEL, log_file: Optional[Union[str, Path]] = None) -> dict:
    handlers = ["console"]
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "staker": {
                "level": level.upper(),
                "handlers": handlers,
                "propagate": False,
            },
            # Request lines from the HTTP client are noise at INFO
            "httpx": {
                "level": "WARNING",
                "handlers": handlers,
                "propagate": False,
            },
            "httpcore": {
                "level": "WARNING",
                "handlers": handlers,
                "propagate": False,
            },
        },
        "root": {
            "level": "WARNING",
            "handlers": handlers,
        },
    }
    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": str(log_file),
            "mode": "a",
        }
        handlers.append("file")
    return config


def setup_logging(level: str = LOG_LEVEL, log_file: Optional[Union[str, Path]] = None) -> None:
    """ Apply the logging configuration. """
    logging.config.dictConfig(build_logging_config(level, log_file))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
