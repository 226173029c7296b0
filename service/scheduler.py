# service/scheduler.py
from __future__ import annotations

import logging
import os
import threading
import time as _time
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Any

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from . import config_schema, runner

LOG = logging.getLogger(__name__)


# ---- Internal structures ----------------------------------------------------


@dataclass(frozen=True)
class JobSpec:
    id: str
    trigger: Any  # apscheduler.triggers.base.BaseTrigger
    module: str
    kwargs: dict[str, Any]
    timeout_sec: int | None
    max_instances: int
    coalesce: bool
    misfire_grace_time: int | None
    summary: str | None


# ---- Public controller ------------------------------------------------------


class SchedulerController:
    """A small façade around APScheduler so the CLI can manage lifecycle cleanly."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # wait=False -> stop immediately; jobs in-flight are allowed to finish.
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()
        LOG.info("Scheduler shut down complete.")

    def join(self, timeout: float | None = None) -> bool:
        """Block until stopped (or timeout). True if stopped before timeout."""
        return self._stopped_evt.wait(timeout=timeout)


# ---- Module API -------------------------------------------------------------


def build(cfg: dict[str, Any]) -> BackgroundScheduler:
    """Build a (not yet started) scheduler with every valid job from `cfg`."""
    tz = _resolve_timezone(cfg)
    job_defaults = {"coalesce": True, "max_instances": 1}

    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults=job_defaults,
        executors={"default": ThreadPoolExecutor(_int_or(cfg.get("executor_workers"), 4))},
        jobstores={"default": MemoryJobStore()},
    )

    for raw in cfg.get("jobs", []):
        try:
            spec = _make_job_spec(raw, default_job_defaults=job_defaults, tz=tz)
        except (KeyError, TypeError, ValueError):
            LOG.exception("Skipping job due to config error: %r", raw)
            continue
        _add_job(scheduler, spec)
    return scheduler


def start(config_path: str | None = None) -> SchedulerController:
    """
    Load configuration, build an APScheduler instance, add jobs, and start.

    APScheduler 3.x prefers a pytz scheduler timezone; triggers without their
    own timezone inherit it.
    """
    cfg = config_schema.load_config(config_path)
    scheduler = build(cfg)
    scheduler.start()
    LOG.info("Scheduler started with %d job(s).", len(scheduler.get_jobs()))
    return SchedulerController(scheduler)


def preview_trigger(trigger: Any, tz: Any, count: int = 6, start: datetime | None = None) -> list[datetime]:
    """Next `count` fire times of `trigger`, starting from `start` (default: now in tz)."""
    now = start or datetime.now(tz=tz)
    prev = now
    times: list[datetime] = []
    for _ in range(count):
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        times.append(nxt)
        prev = nxt
        now = nxt + timedelta(microseconds=1)
    return times


# ---- Helpers ----------------------------------------------------------------


def _resolve_timezone(cfg: dict[str, Any]) -> Any:
    tz_name = cfg.get("timezone") or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid tz '%s')", tz_name)
        return pytz.UTC


def _tz(name: Any, default: Any) -> Any:
    if not name:
        return default
    try:
        return pytz.timezone(str(name))
    except pytz.UnknownTimeZoneError as err:
        raise ValueError(f"unknown timezone {name!r}") from err


def _make_job_spec(raw: dict[str, Any], default_job_defaults: dict[str, Any], tz: Any) -> JobSpec:
    module = _require(raw, "module")
    jid = str(raw.get("id") or raw.get("name") or module)

    return JobSpec(
        id=jid,
        trigger=build_trigger(raw["trigger"], tz),
        module=module,
        kwargs=dict(raw.get("kwargs") or {}),
        timeout_sec=_int_or(raw.get("timeout_sec"), None),
        max_instances=_int_or(raw.get("max_instances"), default_job_defaults["max_instances"]) or 1,
        coalesce=bool(raw.get("coalesce", default_job_defaults["coalesce"])),
        misfire_grace_time=_int_or(raw.get("misfire_grace_time"), None) or None,
        summary=raw.get("summary") or raw.get("description"),
    )


def build_trigger(trig_def: dict[str, Any], tz: Any) -> Any:
    """
    Build an APScheduler trigger from a dict.

    Supported shapes:
      {"interval": {weeks|days|hours|minutes|seconds, jitter?, start_date?, end_date?, timezone?}}
      {"cron":     {second?, minute?, hour?, day?, day_of_week?, month?, timezone?}}
      {"cron":     "*/15 * * * *"}
      {"daily_time": "HH:MM" | ["HH:MM", ...] | {"time": ..., "day_of_week"?, "timezone"?}}
    """
    if not isinstance(trig_def, dict):
        raise ValueError("trigger spec must be a dict")

    present = [k for k in ("interval", "cron", "daily_time") if trig_def.get(k) is not None]
    if len(present) != 1:
        raise ValueError("exactly one of {'interval','cron','daily_time'} must be provided")
    kind = present[0]

    # ---------- INTERVAL ----------
    if kind == "interval":
        spec = trig_def["interval"]
        if not isinstance(spec, dict):
            raise ValueError("interval must be an object with time fields")

        allowed = {"weeks", "days", "hours", "minutes", "seconds", "jitter", "timezone", "start_date", "end_date"}
        unknown = set(spec) - allowed
        if unknown:
            raise ValueError(f"interval has unknown field(s): {sorted(unknown)}")

        def _as_int_ge0(name: str) -> int:
            try:
                v = int(spec.get(name, 0))
            except (TypeError, ValueError) as err:
                raise ValueError(f"interval.{name} must be an integer") from err
            if v < 0:
                raise ValueError(f"interval.{name} must be >= 0")
            return v

        kwargs: dict[str, Any] = {}
        for k in ("weeks", "days", "hours", "minutes", "seconds"):
            if _as_int_ge0(k):
                kwargs[k] = _as_int_ge0(k)
        if not kwargs:
            raise ValueError("interval must be greater than 0 (provide at least one nonzero time field)")
        if _as_int_ge0("jitter"):
            kwargs["jitter"] = _as_int_ge0("jitter")
        for k in ("start_date", "end_date"):
            if k in spec:
                kwargs[k] = spec[k]
        return IntervalTrigger(timezone=_tz(spec.get("timezone"), tz), **kwargs)

    # ---------- CRON ----------
    if kind == "cron":
        cron_spec = trig_def["cron"]
        if isinstance(cron_spec, str):
            fields = cron_spec.strip().split()
            if len(fields) != 5:
                raise ValueError(f"cron string must have 5 fields (got {len(fields)}): {cron_spec!r}")
            return CronTrigger.from_crontab(cron_spec, timezone=tz)
        if isinstance(cron_spec, dict):
            allowed = {"second", "minute", "hour", "day", "day_of_week", "month", "timezone", "jitter"}
            unknown = set(cron_spec) - allowed
            if unknown:
                raise ValueError(f"cron has unknown field(s): {sorted(unknown)}")
            return CronTrigger(
                second=cron_spec.get("second", 0),
                minute=cron_spec.get("minute", 0),
                hour=cron_spec.get("hour", 0),
                day=cron_spec.get("day"),
                day_of_week=cron_spec.get("day_of_week"),
                month=cron_spec.get("month"),
                jitter=cron_spec.get("jitter"),
                timezone=_tz(cron_spec.get("timezone"), tz),
            )
        raise ValueError("cron must be a crontab string or an object")

    # ---------- DAILY TIME ----------
    dtdef = trig_def["daily_time"]
    if not isinstance(dtdef, dict):
        dtdef = {"time": dtdef}
    unknown = set(dtdef) - {"time", "day_of_week", "timezone"}
    if unknown:
        raise ValueError(f"daily_time has unknown field(s): {sorted(unknown)}")

    times = dtdef.get("time")
    if times is None:
        raise ValueError("daily_time requires 'time'")
    if isinstance(times, str):
        times = [times]

    tzinfo = _tz(dtdef.get("timezone"), tz)
    per_time = [
        CronTrigger(second=s, minute=m, hour=h, day_of_week=dtdef.get("day_of_week"), timezone=tzinfo)
        for h, m, s in sorted({_parse_time(str(t)) for t in times})
    ]
    return per_time[0] if len(per_time) == 1 else OrTrigger(per_time)


def _parse_time(s: str) -> tuple[int, int, int]:
    parts = s.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"daily_time must be 'HH:MM' or 'HH:MM:SS', got {s!r}")
    try:
        hh, mm = int(parts[0]), int(parts[1])
        ss = int(parts[2]) if len(parts) == 3 else 0
    except ValueError as err:
        raise ValueError(f"daily_time must contain integers: {s!r}") from err
    time(hh, mm, ss)  # validates ranges
    return hh, mm, ss


def _add_job(scheduler: BackgroundScheduler, spec: JobSpec) -> None:
    """
    Register the job with a wrapper that runs the module through
    ``runner.run_module_once()`` (which writes the activity record) and keeps
    exceptions from reaching APScheduler's executor.
    """

    def _job_wrapper() -> None:
        started = _time.monotonic()
        LOG.info("Job[%s] starting (module=%s)", spec.id, spec.module)
        try:
            meta, run_id = runner.run_module_once(
                spec.module,
                kwargs=dict(spec.kwargs),
                trigger_type="scheduled",
                job_context=_build_job_context(spec),
                timeout_sec=spec.timeout_sec,
            )
        except Exception:
            LOG.exception("Job[%s] raised an exception.", spec.id)
            return
        LOG.info(
            "Job[%s] finished in %.3fs (run_id=%s): %s",
            spec.id,
            _time.monotonic() - started,
            run_id,
            (meta or {}).get("message", "OK"),
        )

    scheduler.add_job(
        func=_job_wrapper,
        trigger=spec.trigger,
        id=spec.id,
        name=spec.summary or spec.id,
        max_instances=spec.max_instances,
        coalesce=spec.coalesce,
        misfire_grace_time=spec.misfire_grace_time,
        replace_existing=True,
    )
    LOG.debug("Registered job[%s] (module=%s, trigger=%s)", spec.id, spec.module, spec.trigger)


def _require(d: dict[str, Any], key: str) -> Any:
    if key not in d or d[key] in (None, ""):
        raise ValueError(f"Missing required key: {key}")
    return d[key]


def _int_or(v: Any, default: int | None) -> int | None:
    """Return int(v) or default if v is None/invalid (lenient for config)."""
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _build_job_context(spec: JobSpec) -> dict[str, Any]:
    return {
        "job_id": spec.id,
        "module": spec.module,
        "now_iso": datetime.now(timezone.utc).isoformat(),
    }
