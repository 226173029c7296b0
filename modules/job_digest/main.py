from __future__ import annotations

from typing import Any

from .lib.config import RunFlags, Settings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity

_FLAG_KEYS = ("include", "exclude", "max", "max_items", "debug", "dedupe", "reset", "test")


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'job_digest' module (scheduler/runner contract).

    Accepts kwargs, including:
      sources_path: str          # JSON/YAML source list (default: built-in boards)
      seen_path: str = "data/seen.json"
      seen_bound: int = 50
      page_source: str = "http"  # http | browser | static
      max_workers: int = 1
      skip_failed_sources: bool = False

      # Run flags (same meaning as the trigger endpoint's query parameters)
      include: str, exclude: str, max: int = 10,
      debug: bool, dedupe: bool = True, reset: bool, test: bool

      Any key may instead be given as "<key>_env" (name of an env var holding
      the value), e.g. include_env: DIGEST_INCLUDE.

    Returns:
      a meta dict (message, per-source counts, totals); the runner records it.
      Notification is sent by the engine itself.
    """
    # The runner resolves "<key>_env" values; an explicit <key> wins.
    for env_key in [k for k in kwargs if k.endswith("_env")]:
        value = kwargs.pop(env_key)
        if value not in (None, ""):
            kwargs.setdefault(env_key[: -len("_env")], value)

    settings = Settings.from_env_and_kwargs({k: v for k, v in kwargs.items() if k not in _FLAG_KEYS})
    flags = RunFlags.from_params({k: v for k, v in kwargs.items() if k in _FLAG_KEYS})

    log_activity({
        "component": "job_digest.main",
        "op": "start",
        "sources": [s.name for s in settings.sources],
        "page_source": settings.page_source,
        "flags": {"dedupe": flags.dedupe, "reset": flags.reset, "test": flags.test, "max": flags.max_items},
    })

    outcome = _run_engine(settings, flags)
    meta = outcome.to_meta()
    if outcome.payload is not None:
        meta["payload"] = outcome.payload
    return meta
