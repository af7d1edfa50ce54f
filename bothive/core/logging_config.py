"""
Logging setup for the Bothive API.

Console plus a size-rotated file under `logs/`. Connection strings, signing
secrets and webhook secrets must never reach either sink.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Mapping

LOG_FILE = "bothive.log"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Drivers and HTTP clients that flood INFO with per-request lines
QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "stripe", "httpx", "pymongo", "realtime")

SENSITIVE_KEYS = (
    "password", "token", "secret", "key", "authorization", "cookie",
    "service_role", "mongodb_uri",
)
REDACTED = "***REDACTED***"


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    return handler


def setup_logging(log_level: str = "INFO", log_dir: str = "logs"):
    """
    Replace the root handlers with a console and a rotating file handler.

    Args:
        log_level: Level name; unknown names fall back to INFO
        log_dir: Directory holding bothive.log (created if missing)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(_handler(logging.StreamHandler(sys.stdout), level, CONSOLE_FORMAT))
    root.addHandler(_handler(
        RotatingFileHandler(log_path / LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3),
        level,
        FILE_FORMAT,
    ))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def sanitize_log_data(data: Mapping[str, Any]) -> dict[str, Any]:
    """Copy `data`, redacting secret-looking keys at any nesting depth."""
    sanitized: dict[str, Any] = {}
    for key, value in data.items():
        if _is_sensitive(str(key)):
            sanitized[key] = REDACTED
        elif isinstance(value, Mapping):
            sanitized[key] = sanitize_log_data(value)
        else:
            sanitized[key] = value
    return sanitized
