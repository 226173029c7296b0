# service/config_schema.py
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

try:
    import yaml  # type: ignore
except Exception:  # pragma: no cover
    yaml = None  # YAML optional


class ConfigError(ValueError):
    """Raised when the schedule config is invalid."""


@dataclass
class _LoadResult:
    cfg: dict[str, Any]
    source: str


_TRIGGER_FIELDS = ("cron", "interval", "daily_time")

# Keys modules.job_digest accepts in a job's kwargs (each may also be given as
# "<key>_env", naming an environment variable that holds the value).
DIGEST_MODULES = ("modules.job_digest", "modules.job_digest.main")
_DIGEST_SETTINGS = (
    "sources",
    "sources_path",
    "seen_path",
    "seen_bound",
    "page_source",
    "static_dir",
    "max_workers",
    "skip_failed_sources",
    "user_agent",
)
_DIGEST_FLAGS = ("include", "exclude", "max", "max_items", "debug", "dedupe", "reset", "test")
_PAGE_SOURCES = ("http", "browser", "static")
_DAILY_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Load the schedule configuration.

    Resolution order:
      1) Explicit `path` argument (if provided)
      2) os.environ['CONFIG_PATH'] (if set)
      3) Empty config (no jobs)

    Every returned job carries an "id" and a nested "trigger" mapping, whether
    the file put the trigger at job top-level or under "trigger".
    """
    resolved_path = path or os.environ.get("CONFIG_PATH")
    if not resolved_path:
        logger.info("CONFIG_PATH not provided; using empty default config.")
        cfg: dict[str, Any] = {"jobs": []}
        _apply_top_level_defaults(cfg)
        return cfg

    cfg = _read_any(resolved_path).cfg
    _apply_top_level_defaults(cfg)
    return cfg


def validate(cfg: dict[str, Any]) -> None:
    """Validate a loaded configuration. Raise ConfigError on any problem."""
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a dict.")

    jobs = cfg.get("jobs")
    if not isinstance(jobs, list):
        raise ConfigError("'jobs' must be a list.")

    tz = cfg.get("timezone")
    if tz is not None and not isinstance(tz, str):
        raise ConfigError("'timezone' must be a string if provided.")

    seen_ids: set[str] = set()
    for idx, job in enumerate(jobs):
        if not isinstance(job, dict):
            raise ConfigError(f"Job at index {idx} must be an object/dict.")

        module = job.get("module")
        if not isinstance(module, str) or not module.strip():
            raise ConfigError(f"Job {idx}: 'module' is required and must be a non-empty string.")

        job_id = _derive_job_id(job, idx)
        if job_id in seen_ids:
            raise ConfigError(f"Duplicate job id '{job_id}'.")
        seen_ids.add(job_id)

        trigger = job.get("trigger")
        if not isinstance(trigger, dict):
            raise ConfigError(f"Job '{job_id}': 'trigger' must be an object.")
        present = [k for k in _TRIGGER_FIELDS if trigger.get(k) is not None]
        if len(present) != 1:
            raise ConfigError(f"Job '{job_id}': exactly one trigger required among {', '.join(_TRIGGER_FIELDS)}.")

        kind = present[0]
        value = trigger[kind]
        if kind == "interval":
            if not isinstance(value, dict):
                raise ConfigError(f"Job '{job_id}': interval must be an object of time kwargs.")
            _validate_int_map(value, job_id)
        elif kind == "cron" and not isinstance(value, (str, dict)):
            raise ConfigError(f"Job '{job_id}': cron must be a crontab string or an object.")
        elif kind == "daily_time":
            _validate_daily_time(value, job_id)

        if "kwargs" in job and not isinstance(job["kwargs"], dict):
            raise ConfigError(f"Job '{job_id}': 'kwargs' must be a dict if provided.")
        if module.strip() in DIGEST_MODULES:
            _validate_digest_kwargs(job.get("kwargs") or {}, job_id)

        _require_optional_bool(job, "coalesce", job_id)
        _require_optional_int(job, "timeout_sec", job_id, allow_zero=True)
        _require_optional_int(job, "max_instances", job_id, allow_zero=False)
        _require_optional_int(job, "misfire_grace_time", job_id, allow_zero=True)

        for opt_str in ("summary", "description"):
            if opt_str in job and not isinstance(job[opt_str], str):
                raise ConfigError(f"Job '{job_id}': '{opt_str}' must be a string if provided.")


def _apply_top_level_defaults(cfg: dict[str, Any]) -> None:
    if "jobs" not in cfg or not isinstance(cfg["jobs"], list):
        cfg["jobs"] = []

    tz = cfg.get("timezone")
    if not isinstance(tz, str) or not tz.strip():
        cfg["timezone"] = os.environ.get("TZ", "UTC")

    normalized_jobs: list[dict[str, Any]] = []
    for idx, job in enumerate(cfg["jobs"]):
        if not isinstance(job, dict):
            raise ConfigError(f"Job at index {idx} must be an object/dict.")

        job_copy = dict(job)
        job_copy["id"] = _derive_job_id(job_copy, idx)

        # Top-level trigger keys move under "trigger"; mixing both forms is an error.
        top_level = {k: job_copy.pop(k) for k in _TRIGGER_FIELDS if k in job_copy}
        if top_level:
            if "trigger" in job_copy:
                raise ConfigError(
                    f"Job '{job_copy['id']}': do not mix top-level triggers {sorted(top_level)} with nested 'trigger'."
                )
            job_copy["trigger"] = top_level

        if "coalesce" in job_copy:
            job_copy["coalesce"] = _to_bool(job_copy["coalesce"], field="coalesce", job_id=job_copy["id"])
        for n, allow_zero in (("timeout_sec", True), ("max_instances", False), ("misfire_grace_time", True)):
            if n in job_copy:
                job_copy[n] = _to_int(job_copy[n], field=n, job_id=job_copy["id"], allow_zero=allow_zero)

        normalized_jobs.append(job_copy)

    cfg["jobs"] = normalized_jobs


def _derive_job_id(job: dict[str, Any], idx: int) -> str:
    # id | name | module → id
    for key in ("id", "name", "module"):
        v = job.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return f"job_{idx}"


def _validate_daily_time(value: Any, job_id: str) -> None:
    if isinstance(value, dict):
        value = value.get("time")
    times = [value] if isinstance(value, str) else value
    if not isinstance(times, list) or not times:
        raise ConfigError(f"Job '{job_id}': daily_time needs 'HH:MM' (or a list of them).")
    for t in times:
        m = _DAILY_TIME_RE.match(str(t).strip())
        if not m:
            raise ConfigError(f"Job '{job_id}': daily_time {t!r} must match HH:MM[:SS] (24h).")
        hour, minute, second = int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)
        if not (0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= second <= 59):
            raise ConfigError(f"Job '{job_id}': daily_time {t!r} out of range (00:00..23:59).")


def _validate_digest_kwargs(kwargs: dict[str, Any], job_id: str) -> None:
    """
    Catch job_digest kwargs that would only fail at run time: unknown keys,
    a non-integer `max`, an unknown `page_source`, non-positive bounds.
    Values given through "<key>_env" are resolved at run time and not checked.
    """
    known = set(_DIGEST_SETTINGS) | set(_DIGEST_FLAGS)
    for key, value in kwargs.items():
        base = key[: -len("_env")] if key.endswith("_env") else key
        if base not in known:
            raise ConfigError(f"Job '{job_id}': unknown job_digest kwarg {key!r}.")
        if key != base:
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(f"Job '{job_id}': {key!r} must name an environment variable.")
            continue

        if base in ("max", "max_items"):
            try:
                int(str(value).strip())
            except ValueError as err:
                raise ConfigError(f"Job '{job_id}': '{base}' must be an integer (got {value!r}).") from err
        elif base in ("seen_bound", "max_workers"):
            _to_int(value, field=base, job_id=job_id, allow_zero=False)
        elif base == "page_source" and str(value).strip().lower() not in _PAGE_SOURCES:
            raise ConfigError(f"Job '{job_id}': 'page_source' must be one of {', '.join(_PAGE_SOURCES)}.")
        elif base == "sources" and not isinstance(value, list):
            raise ConfigError(f"Job '{job_id}': 'sources' must be a list of source objects.")

    if "page_source" in kwargs and str(kwargs["page_source"]).strip().lower() == "static":
        if not (kwargs.get("static_dir") or kwargs.get("static_dir_env")):
            raise ConfigError(f"Job '{job_id}': page_source 'static' requires 'static_dir'.")


def _require_optional_bool(job: dict[str, Any], field: str, job_id: str) -> None:
    if field in job:
        _to_bool(job[field], field=field, job_id=job_id)


def _require_optional_int(job: dict[str, Any], field: str, job_id: str, *, allow_zero: bool) -> None:
    if field in job:
        _to_int(job[field], field=field, job_id=job_id, allow_zero=allow_zero)


def _validate_int_map(m: dict[str, Any], job_id: str) -> None:
    for k, v in m.items():
        if k in ("timezone", "start_date", "end_date"):
            continue
        _to_int(v, field=f"interval.{k}", job_id=job_id, allow_zero=True)


def _to_bool(value: Any, *, field: str, job_id: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in {"1", "true", "yes", "on"}:
            return True
        if v in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"Job '{job_id}': '{field}' must be a boolean (or boolean-like string).")


def _to_int(value: Any, *, field: str, job_id: str, allow_zero: bool) -> int:
    try:
        iv = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Job '{job_id}': '{field}' must be an integer.") from err
    if iv < 0 or (iv == 0 and not allow_zero):
        raise ConfigError(f"Job '{job_id}': '{field}' must be >= {'0' if allow_zero else '1'} (got {iv}).")
    return iv


def _read_any(path: str) -> _LoadResult:
    lower = path.lower()
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    if lower.endswith(".yml") or lower.endswith(".yaml"):
        if yaml is None:
            raise ConfigError("YAML config requested but PyYAML is not installed.")
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Top-level YAML must be a mapping/object.")
        return _LoadResult(cfg=data, source=path)

    # JSON for .json and unknown extensions
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Top-level JSON must be an object.")
    return _LoadResult(cfg=data, source=path)
