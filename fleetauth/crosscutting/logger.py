# fleetauth/crosscutting/logger.py
"""
===============================================================================
MODULE: Structured (JSON) logger for the authorization engine
===============================================================================

Every record is one JSON line carrying the request correlation id. Credential
material never reaches the sink: values under secret-looking keys are
replaced, and bearer tokens embedded in free text are masked.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Component:
  redact() + JSONFormatter + setup_logger()

Responsibilities:
  - Mask PINs, passwords, verifier hashes, JWTs and signing keys
  - Enrich records with request_id / method / path
  - Fall back to plain text when log_json is off

Collaborators:
  - fleetauth/context.py (ContextVars)
  - crosscutting/config.py (log_level, log_json)
===============================================================================
"""

from __future__ import annotations

import json
import logging
import re
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

REDACTED = "***REDACTED***"

SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "credential",
        "password",
        "pin",
        "private_key",
        "secret",
        "token",
    }
)
SENSITIVE_SUFFIXES = ("_pin", "_token", "_secret", "_hash", "_private_base64")

# header.payload.signature with a base64url JSON header.
_JWT = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]*")

_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "taskName"}


def is_sensitive(key: str) -> bool:
    key = key.lower()
    return key in SENSITIVE_KEYS or key.endswith(SENSITIVE_SUFFIXES)


def redact(value: Any, key: str | None = None) -> Any:
    """Return a JSON-safe copy of value with credential material masked."""
    if key is not None and is_sensitive(key):
        return REDACTED
    if isinstance(value, str):
        return _JWT.sub("<jwt>", value)
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes {len(value)}B>"
    if isinstance(value, dict):
        return {str(k): redact(v, str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [redact(v, key) for v in value]
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return redact(str(value))


class JSONFormatter(logging.Formatter):
    """LogRecord -> one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        from ..context import get_context_dict

        payload.update(get_context_dict())

        for k, v in record.__dict__.items():
            if k not in _RECORD_ATTRS:
                payload[k] = redact(v, k)

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": redact(str(exc)),
                "stacktrace": redact(traceback.format_exception(exc_type, exc, tb)),
            }

        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def setup_logger(name: str = "fleetauth") -> logging.Logger:
    """Configure the package logger once; re-imports keep a single handler."""
    log = logging.getLogger(name)

    level, use_json = "INFO", True
    # Settings may be invalid at import time (tests, scripts).
    try:
        from .config import get_settings

        settings = get_settings()
        level = (settings.log_level or "INFO").upper()
        use_json = bool(settings.log_json)
    except ValueError:
        pass

    log.setLevel(getattr(logging, level, logging.INFO))

    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            JSONFormatter()
            if use_json
            else logging.Formatter("%(levelname)s %(name)s %(message)s")
        )
        log.addHandler(handler)

    return log


logger = setup_logger()
