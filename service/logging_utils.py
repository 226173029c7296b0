# service/logging_utils.py
from __future__ import annotations

import contextlib
import datetime as _dt
import json
import os
import socket
from collections.abc import Iterable
from typing import Any

# Substrings of keys whose values never reach disk (case-insensitive).
_DEFAULT_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "authorization",
    "cookie",
    "telegram_",
}

_HOSTNAME = socket.gethostname()
_PID = os.getpid()


# ---- Configuration (read per call so tests can repoint LOG_DIR) --------------


def _log_dir() -> str:
    return os.getenv("LOG_DIR", "local/logs")


def _prefix(kind: str) -> str:
    if kind == "error":
        return os.getenv("ERROR_LOG_PREFIX", "error")
    return os.getenv("ACTIVITY_LOG_PREFIX", "activity")


def _max_bytes() -> int:
    try:
        return int(os.getenv("ACTIVITY_LOG_MAX_BYTES", "0"))
    except ValueError:
        return 0


# ---- Public API --------------------------------------------------------------


def write_activity_log(record: dict[str, Any]) -> None:
    """
    Append one structured activity record to today's JSONL file.
    Never mutates `record`; raises on unrecoverable I/O or serialization errors.
    """
    _write_jsonl(get_log_path("activity"), record)


def write_error_log(record: dict[str, Any]) -> None:
    """Append one structured error record to today's error JSONL file."""
    _write_jsonl(get_log_path("error"), record)


def get_log_path(kind: str = "activity") -> str:
    """Path of today's file for `kind` ("activity" | "error"): <prefix>-YYYY-MM-DD.jsonl."""
    today = _dt.date.today().isoformat()
    return os.path.join(_log_dir(), f"{_prefix(kind)}-{today}.jsonl")


def redact(record: dict[str, Any], keys: set[str] | None = None) -> dict[str, Any]:
    """Deep copy of `record` with secret-looking keys masked."""
    return _redact_deep(record, keys or _DEFAULT_REDACT_KEYS)


# ---- Internal helpers --------------------------------------------------------


def _rotate_if_needed(path: str) -> None:
    limit = _max_bytes()
    if limit <= 0:
        return
    try:
        if os.path.getsize(path) < limit:
            return
    except FileNotFoundError:
        return
    ts = _dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    with contextlib.suppress(FileNotFoundError):
        os.replace(path, f"{path}.{ts}")


def _key_matches(name: str, patterns: Iterable[str]) -> bool:
    n = name.lower()
    return any(pat in n for pat in patterns)


def _redact_deep(value: Any, patterns: Iterable[str]) -> Any:
    if isinstance(value, dict):
        return {
            k: "***REDACTED***" if isinstance(k, str) and _key_matches(k, patterns) else _redact_deep(v, patterns)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact_deep(v, patterns) for v in value]
    if isinstance(value, str) and value.lower().startswith("bearer "):
        return "Bearer ***REDACTED***"
    return value


def _write_jsonl(path: str, record: dict[str, Any]) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    _rotate_if_needed(path)

    payload = dict(_redact_deep(record, _DEFAULT_REDACT_KEYS))
    payload["_meta"] = {"host": _HOSTNAME, "pid": _PID}
    # Serialize before touching the file; default=str covers datetimes/paths.
    data = (json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str) + "\n").encode("utf-8")

    # Single O_APPEND write keeps concurrent lines intact on POSIX.
    fd = os.open(path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o644)
    try:
        os.write(fd, data)
    finally:
        os.close(fd)
