"""Logging setup for the interceptor.

All diagnostics go to stderr. Debug traces are only emitted when debug output
is enabled; errors are always shown.
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import os

from nix_monitored.config import LoggingSettings

LOGGER_NAME = "nix-monitored"


class JsonLogFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "pid": os.getpid(),
            "msg": record.getMessage(),
        }
        if record.exc_info:
            log_data["exc"] = self.formatException(record.exc_info)
        return json.dumps(log_data, separators=(",", ":"))


def setup_logging(settings: LoggingSettings, logger_name: str = LOGGER_NAME) -> logging.Logger:
    """Configure the interceptor's logger tree.

    Args:
        settings: Logging section of the resolved configuration
        logger_name: Root of the logger tree to configure

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Clear existing handlers
    logger.handlers.clear()
    logger.propagate = False

    level = logging.DEBUG if settings.debug else logging.WARNING
    logger.setLevel(level)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    if settings.format == "json":
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)

    logger.debug("debug output enabled")
    return logger
