# service/runner.py
from __future__ import annotations

import importlib
import json
import logging
import os
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timezone
from typing import Any

from service.logging_utils import write_activity_log

log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def now_iso() -> str:
    return datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")


def _maybe_bool(v: Any) -> Any:
    if isinstance(v, str):
        low = v.strip().lower()
        if low in ("true", "t", "yes", "y"):
            return True
        if low in ("false", "f", "no", "n"):
            return False
    return v


def _maybe_number(v: Any) -> Any:
    if isinstance(v, str):
        s = v.strip()
        if s and (s.isdigit() or (s.startswith("-") and s[1:].isdigit())):
            return int(s)
        try:
            return float(s)
        except ValueError:
            pass
    return v


def _normalize_kwargs_types(kwargs: dict[str, object] | None) -> dict[str, object]:
    """
    Normalize job kwargs before module.run(**kwargs):

      • keys ending with "_env": the value names an environment variable; it is
        replaced by that variable's value ("" if unset) and the key is kept.
      • other string values: JSON-looking strings ({...} / [...]) are parsed,
        then bool words and numbers are coerced. "1"/"0" become ints, which
        the module's flag parsing treats like the trigger's query strings.
    """
    if not kwargs:
        return {}

    normalized: dict[str, object] = {}
    for k, v in kwargs.items():
        if isinstance(k, str) and k.endswith("_env") and isinstance(v, str):
            normalized[k] = os.getenv(v.strip(), "")
            continue

        if isinstance(v, str):
            s = v.strip()
            if (s.startswith("{") and s.endswith("}")) or (s.startswith("[") and s.endswith("]")):
                try:
                    normalized[k] = json.loads(s)
                    continue
                except json.JSONDecodeError:
                    pass
            normalized[k] = _maybe_number(_maybe_bool(s))
        else:
            normalized[k] = v

    return normalized


def _resolve_callable(module_path: str) -> Callable[..., Any]:
    """Import module (or its `.main` submodule) and return its `run` callable."""
    mod = importlib.import_module(module_path)
    if not hasattr(mod, "run"):
        try:
            mod = importlib.import_module(f"{module_path}.main")
        except ModuleNotFoundError:
            pass
    if not hasattr(mod, "run") or not callable(mod.run):
        raise AttributeError(f"Module {module_path!r} does not define a callable `run(**kwargs)`.")
    return mod.run  # type: ignore[no-any-return]


def _emit_activity(record: dict[str, Any]) -> None:
    try:
        write_activity_log(record)
    except Exception as e:
        log.warning("write_activity_log failed: %s", e)


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
def run_module_once(
    module: str,
    kwargs: dict[str, object] | None = None,
    trigger_type: str = "scheduled",
    job_context: dict[str, object] | None = None,  # e.g., {"job_id": "...", "now_iso": "..."}
    timeout_sec: int | None = None,
) -> tuple[dict[str, Any] | None, str]:
    """
    Execute a module's run(**kwargs) once and record one activity line.

    Returns:
        (meta_or_none, run_id)
    Raises:
        Propagates exceptions from module execution (caller/CLI decides exit code).
        TimeoutError as soon as `timeout_sec` elapses; the module keeps running
        in its abandoned worker thread (threads cannot be killed).
    """
    run_id = uuid.uuid4().hex
    context: dict[str, Any] = {
        "run_id": run_id,
        "module": module,
        "trigger_type": trigger_type,
        "started_at": now_iso(),
    }
    if job_context:
        context.update({k: v for k, v in job_context.items() if k not in context})

    kw = _normalize_kwargs_types(kwargs)
    run_callable = _resolve_callable(module)

    meta: dict[str, Any] | None = None
    exc: BaseException | None = None
    t0 = datetime.now()
    # Not a `with` block: its exit would join the worker past the timeout.
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="runner")
    try:
        fut = pool.submit(run_callable, **kw)
        value = fut.result(timeout=timeout_sec) if timeout_sec else fut.result()
        if value is not None and not isinstance(value, dict):
            raise TypeError(f"Module {module!r} must return a dict or None (got {type(value).__name__}).")
        meta = value
    except FutureTimeout:
        exc = TimeoutError(f"Module run timed out after {timeout_sec}s")
        log.warning("Module %s exceeded %ss; abandoning its worker thread (run_id=%s)", module, timeout_sec, run_id)
    except Exception as e:
        exc = e
    finally:
        pool.shutdown(wait=False, cancel_futures=True)
    duration_ms = int((datetime.now() - t0).total_seconds() * 1000)

    _emit_activity({
        "ts": now_iso(),
        "run_id": run_id,
        "module": module,
        "trigger_type": trigger_type,
        "ok": exc is None,
        "message": str(exc) if exc else (meta or {}).get("message", "OK"),
        "exception_type": type(exc).__name__ if exc else None,
        "duration_ms": duration_ms,
        "context": context,
        "kwargs": kw,
        "meta": meta or {},
    })

    if exc:
        raise exc
    return meta, run_id
