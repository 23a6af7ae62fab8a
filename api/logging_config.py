"""
Logging configuration for the Rapid Offer API.

Called once from create_app(). Supports text and JSON output through the
LOG_FORMAT setting; LOG_LEVEL defaults to INFO.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from config.settings import Settings, get_settings


class JSONFormatter(logging.Formatter):
    """Single-line JSON log formatter for log aggregators."""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


# Third-party loggers that are noisy at INFO
_NOISY_LOGGERS = [
    "httpcore",
    "httpx",
    "aiosqlite",
    "sqlalchemy.engine",
    "uvicorn.access",
]


def configure_logging(settings: Optional[Settings] = None):
    """Install the app's stderr handler on the root logger (replacing a previous one)."""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # Only our own handler is replaced, so test capture handlers survive
    for handler in list(root.handlers):
        if getattr(handler, "_rapid_offer", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler._rapid_offer = True

    if settings.log_format.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "[%(asctime)s] %(levelname)s %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
