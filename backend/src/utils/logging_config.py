"""
Logging setup for the spacecal backend.

Three named loggers, all under the ``spacecal.`` namespace:
- services: series/override mutations, splits and occurrence listings
- recurrence: corrupt rules and clamped expansion windows
- db: engine and schema lifecycle

Production (SPACECAL_ENV=production) writes JSON lines to one rotating file
per logger under SPACECAL_LOG_DIR; any other environment logs readable lines
to stdout. SPACECAL_LOG_LEVEL sets the level for all of them.
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional


LOGGER_NAMES = ["services", "recurrence", "db"]

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Keys: timestamp (UTC, Z suffix), level, logger, message, module,
    function, line, plus ``exception`` and anything passed as
    ``extra={"extra_fields": {...}}``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        payload.update(getattr(record, "extra_fields", {}))
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """``[2024-06-11 19:00:00] INFO - spacecal.services - Split event series: ...``"""

    def __init__(self):
        super().__init__(
            fmt="[%(asctime)s] %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def _log_level() -> int:
    name = os.environ.get("SPACECAL_LOG_LEVEL", "INFO").upper()
    return getattr(logging, name, logging.INFO)


def _is_production() -> bool:
    return os.environ.get("SPACECAL_ENV", "development").lower() == "production"


def _build_handler(logger_name: str, production: bool) -> logging.Handler:
    if production:
        log_dir = Path(os.environ.get("SPACECAL_LOG_DIR", "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{logger_name}.log",
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ConsoleFormatter())
    return handler


def configure_logging() -> Dict[str, logging.Logger]:
    """
    (Re)configure every named logger from the environment.

    Existing handlers are replaced, so calling this twice does not duplicate
    output.

    Returns:
        Mapping of short logger name to Logger
    """
    level = _log_level()
    production = _is_production()

    loggers = {}
    for name in LOGGER_NAMES:
        logger = logging.getLogger(f"spacecal.{name}")
        logger.setLevel(level)
        logger.propagate = False
        logger.handlers.clear()

        handler = _build_handler(name, production)
        handler.setLevel(level)
        logger.addHandler(handler)

        loggers[name] = logger
    return loggers


_loggers: Optional[Dict[str, logging.Logger]] = None


def get_logger(name: str) -> logging.Logger:
    """
    Get one of the named loggers, configuring logging on first use.

    Args:
        name: services, recurrence or db

    Raises:
        ValueError: If the name is not one of LOGGER_NAMES
    """
    global _loggers

    if _loggers is None:
        _loggers = configure_logging()

    if name not in _loggers:
        raise ValueError(
            f"Unknown logger name: {name}. Valid names: {', '.join(LOGGER_NAMES)}"
        )
    return _loggers[name]


def init_logging() -> Dict[str, logging.Logger]:
    """Configure logging at process startup."""
    global _loggers
    _loggers = configure_logging()
    return _loggers
