import logging
import os
from logging.config import dictConfig

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Configure process-wide logging from STUDY_BUDDY_* environment flags."""
    level = os.getenv("STUDY_BUDDY_LOG_LEVEL", "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": DEFAULT_LOG_FORMAT,
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "handlers": ["stderr"],
                "level": level,
            },
            "loggers": {
                # Token-level chatter from the SDKs drowns out pipeline logs.
                "openai": {"level": "WARNING"},
                "httpx": {"level": "WARNING"},
            },
        }
    )

    if os.getenv("STUDY_BUDDY_DEBUG_HTTP", "0") == "1":
        for name in ("httpx", "openai", "uvicorn.access"):
            logging.getLogger(name).setLevel(logging.DEBUG)
