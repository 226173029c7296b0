from __future__ import annotations

import logging
from typing import Any

# Structured records go to service.logging_utils when the service package is
# importable (container / CLI runs); otherwise they land on stdlib logging.
_backend = None
try:
    from service import logging_utils as _backend  # type: ignore
except Exception:
    _backend = None

_SECRET_KEYS = {
    "password",
    "token",
    "bot_token",
    "apikey",
    "api_key",
    "secret",
    "authorization",
    "auth",
    "bearer",
    "chat_id",
}


def _scrub(record: dict[str, Any]) -> dict[str, Any]:
    """
    Copy `record`, masking top-level values whose key looks secret-like.
    """
    out: dict[str, Any] = {}
    for k, v in record.items():
        lk = str(k).lower()
        if lk in _SECRET_KEYS or lk.startswith("telegram_") or lk.endswith("_secret"):
            out[k] = "***REDACTED***"
        else:
            out[k] = v
    return out


def _emit(writer_name: str, fallback_logger: str, level: int, record: dict[str, Any]) -> None:
    payload = _scrub(record)
    writer = getattr(_backend, writer_name, None) if _backend else None
    if callable(writer):
        try:
            writer(payload)
            return
        except Exception:
            logging.getLogger(__name__).debug("%s failed; using stdlib logging", writer_name, exc_info=True)
    logging.getLogger(fallback_logger).log(level, payload)


def activity(record: dict[str, Any]) -> None:
    """Write a structured activity record (JSONL sink, else stdlib INFO)."""
    _emit("write_activity_log", "job_digest.activity", logging.INFO, record)


def error(record: dict[str, Any]) -> None:
    """Write a structured error record (JSONL sink, else stdlib ERROR)."""
    _emit("write_error_log", "job_digest.error", logging.ERROR, record)
