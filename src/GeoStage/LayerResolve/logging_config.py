# === NAVMAP v1 ===
# {
#   "module": "GeoStage.LayerResolve.logging_config",
#   "purpose": "Structured logging setup, JSON formatting, and secret masking",
#   "sections": [
#     {"id": "masking", "name": "mask_sensitive_data", "anchor": "function-mask-sensitive-data", "kind": "function"},
#     {"id": "formatter", "name": "JSONFormatter", "anchor": "class-jsonformatter", "kind": "class"},
#     {"id": "setup", "name": "setup_logging", "anchor": "function-setup-logging", "kind": "function"}
#   ]
# }
# === /NAVMAP ===
"""
Structured Logging Utilities

This module centralizes logging setup for the layer resolver. It provides a
helper for masking sensitive header values, a formatter emitting JSON log
records that carry the ``stage``/``layer`` context attached by the pipeline,
and :func:`setup_logging` which wires a console handler and an optional
rotating JSON-lines file handler onto the package logger.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

LOGGER_NAME = "GeoStage.LayerResolve"

_SENSITIVE_KEYS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
}
_CONTEXT_FIELDS = ("stage", "layer", "url", "path")
_MANAGED_ATTR = "_layerresolve_managed"


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Args:
        payload: Arbitrary key-value pairs such as response headers.

    Returns:
        Copy of the payload where common secret fields are replaced with
        `***masked***`.

    Examples:
        >>> mask_sensitive_data({"Set-Cookie": "sid=1", "content-type": "text/csv"})
        {'Set-Cookie': '***masked***', 'content-type': 'text/csv'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_obj[field] = value
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    *,
    max_log_size_mb: int = 10,
) -> logging.Logger:
    """Configure console and optional JSON file handlers for the resolver logger.

    Handlers installed by a previous call are replaced, so calling this
    repeatedly does not duplicate output.

    Args:
        level: Logging level name.
        log_dir: Directory receiving ``layerresolve-<date>.jsonl``; console only when ``None``.
        max_log_size_mb: Rotation threshold for the JSON log file.

    Returns:
        The configured ``GeoStage.LayerResolve`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, _MANAGED_ATTR, False):
            logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    setattr(stream_handler, _MANAGED_ATTR, True)
    logger.addHandler(stream_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"layerresolve-{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
        )
        file_handler.setFormatter(JSONFormatter())
        setattr(file_handler, _MANAGED_ATTR, True)
        logger.addHandler(file_handler)

    logger.propagate = True
    return logger


__all__ = ["LOGGER_NAME", "JSONFormatter", "mask_sensitive_data", "setup_logging"]
