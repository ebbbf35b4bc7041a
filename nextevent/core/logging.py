"""Structured logging for the HTTP edge.

One JSON object per line on stdout (or a rotating file), with:
- the request id of the request being served, read from a context variable
- credentials and WeChat identifiers replaced by "[REDACTED]"
- client addresses replaced by a short digest, so throttled clients can still
  be followed across lines without storing their address
- rate limit decision fields grouped under ``rate_limit``
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from nextevent.core.config import LogSettings, settings

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

REDACTED = "[REDACTED]"

# Keys are compared lowercased with "-" folded to "_"
SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "authorization",
        "cookie",
        "set_cookie",
        "token",
        "access_token",
        "refresh_token",
        "password",
        "secret",
        "api_key",
        "x_api_key",
        "openid",
        "unionid",
        "session_key",
    }
)

# Logged as hash_identifier(value) instead of being dropped
CLIENT_ADDRESS_KEYS: frozenset[str] = frozenset(
    {"client_id", "client_ip", "remote_addr", "x_forwarded_for"}
)

RATE_LIMIT_FIELDS = ("client_hash", "limit", "remaining", "retry_after_s")

# Everything a bare LogRecord carries is metadata, not a user extra
_RECORD_ATTRS = frozenset(vars(LogRecord("", logging.INFO, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "request_id",
}

PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s %(message)s"
DEFAULT_LOG_FILE = "logs/nextevent.log"


def set_request_id(request_id: str | None) -> None:
    """Bind ``request_id`` to log lines emitted from the current context."""

    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def hash_identifier(value: str) -> str:
    """Return a short, stable digest so identifiers can be correlated in logs."""

    return hashlib.sha256(value.encode()).hexdigest()[:16]


def _normalize_key(key: str) -> str:
    return key.lower().replace("-", "_")


def scrub(key: str, value: Any, sensitive_keys: frozenset[str] = SENSITIVE_KEYS_DEFAULT) -> Any:
    """Return the loggable form of ``value`` stored under ``key``.

    Nested mappings and sequences are scrubbed key by key.

    Args:
        key: Field name (log extra or nested mapping key).
        value: Field value.
        sensitive_keys: Normalized names whose values are never logged.

    Returns:
        "[REDACTED]", a digest for client addresses, or the scrubbed value.
    """

    name = _normalize_key(key)
    if name in sensitive_keys:
        return REDACTED
    if name in CLIENT_ADDRESS_KEYS and isinstance(value, str):
        return hash_identifier(value)
    if isinstance(value, Mapping):
        return {k: scrub(str(k), v, sensitive_keys) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(scrub(key, v, sensitive_keys) for v in value)
    return value


def _raw_extras(record: LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


def record_extras(
    record: LogRecord, sensitive_keys: frozenset[str] = SENSITIVE_KEYS_DEFAULT
) -> dict[str, Any]:
    """Collect the ``extra=`` fields of a record, scrubbed."""

    return {key: scrub(key, value, sensitive_keys) for key, value in _raw_extras(record).items()}


class RequestIdFilter(logging.Filter):
    """Stamp the context request id on records that do not carry one."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Scrub extras in place so every formatter sees safe values."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        keys = sensitive_keys if sensitive_keys is not None else SENSITIVE_KEYS_DEFAULT
        self.sensitive_keys = frozenset(_normalize_key(k) for k in keys)

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if not getattr(record, "_scrubbed", False):
            for key, value in record_extras(record, self.sensitive_keys).items():
                setattr(record, key, value)
            record._scrubbed = True
        return True


class JsonFormatter(logging.Formatter):
    """Render a record as one JSON object.

    Layout: ``timestamp``, ``level``, ``logger``, ``message``, ``request_id``
    (when known), the remaining extras, a ``rate_limit`` object when the
    record describes a limiter decision, and ``exc_info`` on failures.
    """

    def __init__(
        self,
        *,
        sensitive_keys: Iterable[str] | None = None,
        ensure_ascii: bool = False,
    ) -> None:
        super().__init__()
        keys = sensitive_keys if sensitive_keys is not None else SENSITIVE_KEYS_DEFAULT
        self.sensitive_keys = frozenset(_normalize_key(k) for k in keys)
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        # Records already passed through SensitiveDataFilter hold scrubbed values
        if getattr(record, "_scrubbed", False):
            extras = _raw_extras(record)
        else:
            extras = record_extras(record, self.sensitive_keys)
        decision = {name: extras.pop(name) for name in RATE_LIMIT_FIELDS if name in extras}
        payload.update(extras)
        if decision:
            payload["rate_limit"] = decision

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=self.ensure_ascii)


def build_formatter(log_settings: LogSettings) -> logging.Formatter:
    """JSON by default; ``LOG_FORMAT=plain`` gives one human-readable line."""

    if log_settings.format.lower() == "plain":
        return logging.Formatter(PLAIN_FORMAT, defaults={"request_id": "-"})
    return JsonFormatter()


def build_handler(log_settings: LogSettings) -> logging.Handler:
    """Return the stdout handler, or a (rotating) file handler for ``LOG_OUTPUT=file``."""

    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    path = Path(log_settings.file_path or DEFAULT_LOG_FILE)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not log_settings.max_bytes:
        return logging.FileHandler(path, encoding="utf-8")
    return RotatingFileHandler(
        path,
        maxBytes=log_settings.max_bytes,
        backupCount=log_settings.backup_count,
        encoding="utf-8",
    )


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install the single root handler; safe to call once per app instance.

    Args:
        log_settings: Log settings; the global settings when omitted.
    """

    cfg = log_settings or settings.log

    handler = build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(build_formatter(cfg))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # uvicorn installs its own handlers; keep its lines out of the root handler
    for name in ("uvicorn", "uvicorn.access"):
        logging.getLogger(name).propagate = False
