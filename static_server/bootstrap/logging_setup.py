"""Logging configuration utilities for the HTTPS server."""

import gzip
import json
import logging
import os
import shutil
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from static_server.domain.log_context import ROOT_LOGGER_NAME, ComponentLoggerAdapter

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s :: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 5


class JsonFormatter(logging.Formatter):
    """JSON formatter with stable key ordering for structured logging."""

    extra_keys = (
        "event",
        "client",
        "method",
        "route",
        "status_code",
        "bytes_out",
        "host",
        "port",
        "content_dir",
        "log_file",
        "events_per_second",
        "burst",
        "read_timeout",
        "write_timeout",
        "idle_timeout",
        "shutdown_grace_seconds",
        "error_type",
        "signal",
        "remaining_workers",
        "destination",
        "use_json",
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON with stable key ordering."""
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "component": getattr(record, "component", record.name),
            "message": record.getMessage(),
        }

        for key in self.extra_keys:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, sort_keys=True, default=str)


def gzip_namer(name: str) -> str:
    """Name rotated log files with a ``.gz`` suffix."""
    return f"{name}.gz"


def gzip_rotator(source: str, dest: str) -> None:
    """Compress the log file being rotated out into ``dest``."""
    with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)


def _resolve_level(level_name: str) -> int:
    """Translate text level names into logging module numeric levels."""
    level = getattr(logging, level_name.upper(), None)
    if isinstance(level, int):
        return level
    return logging.INFO


def _build_handler(
    destination: Optional[str], level: int, use_json: bool = False
) -> logging.Handler:
    """Create a stdout or rotating, compressing file handler."""
    if destination and destination.lower() != "stdout":
        target_path = Path(destination)
        target_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            target_path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT
        )
        handler.namer = gzip_namer
        handler.rotator = gzip_rotator
    else:
        handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if use_json:
        handler.setFormatter(JsonFormatter(datefmt=DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def configure_logging(
    level: str = "INFO", destination: Optional[str] = None, use_json: bool = False
) -> ComponentLoggerAdapter:
    """Configure and return the project logger with the requested handler."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    numeric_level = _resolve_level(level)
    logger.setLevel(numeric_level)
    logger.propagate = False

    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    handler = _build_handler(destination, numeric_level, use_json)
    logger.addHandler(handler)

    adapter = ComponentLoggerAdapter(logger, {})
    adapter.info(
        "Logging configured",
        extra={
            "event": "logging_configured",
            "destination": destination or "stdout",
            "use_json": use_json,
        },
    )
    return adapter
