"""JSON logging with request correlation.

Limiter identities (API keys, client IPs) never go into log fields as-is:
callers log ``hash_identity(key)``, and the handler filter blanks any
``extra`` field whose name marks it as a raw identity or credential.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Iterable

from window_limiter.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {"identity", "api_key", "x-api-key", "authorization", "redis_url"}
)

# Attributes every record carries; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def bind_request_id(request_id: str) -> Token:
    return _request_id_var.set(request_id)


def reset_request_id(token: Token) -> None:
    _request_id_var.reset(token)


def get_request_id() -> str | None:
    return _request_id_var.get()


def hash_identity(identity: str) -> str:
    """Return a short, stable digest of a limiter identity for log fields."""
    return hashlib.sha256(identity.encode()).hexdigest()[:16]


def record_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class RedactingFilter(logging.Filter):
    """Blank sensitive ``extra`` fields before any formatter sees them."""

    def __init__(self, fields: Iterable[str] = SENSITIVE_FIELDS) -> None:
        super().__init__()
        self.fields = frozenset(field.lower() for field in fields)

    def filter(self, record: logging.LogRecord) -> bool:
        for key in record_extras(record):
            if key.lower() in self.fields:
                setattr(record, key, REDACTED)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = get_request_id()
        if request_id:
            payload["request_id"] = request_id
        payload.update(record_extras(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install a single redacting stdout handler on the root logger."""

    cfg = log_settings or settings.log

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RedactingFilter())
    if cfg.format == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))
