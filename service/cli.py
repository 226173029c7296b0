# service/cli.py
"""
User-facing command-line entrypoints.

Subcommands
-----------
serve [--host H] [--port P] [--no-scheduler]
    - Starts the APScheduler loop via service.scheduler.start()
    - Serves the HTTP trigger (service.trigger:app) with uvicorn until interrupted

run [--include S] [--exclude S] [--max N] [--debug] [--no-dedupe] [--reset] [--test] [--dry-run]
    - Executes one job_digest pass via runner.run_module_once(...)
    - Prints the status line (and JSON diagnostics for debug/test runs)

reset-seen
    - Clears the seen store

list-sources
    - Prints the configured page sources

list-jobs
    - Prints the scheduled jobs from CONFIG_PATH / --config

validate-config
    - Validates the schedule config and the source list; nonzero on error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from modules.job_digest.lib.config import ConfigError, Settings
from modules.job_digest.lib.seen_store import SeenStore
from service import config_schema as _config_schema
from service import logging_utils as L
from service import runner as _runner
from service import scheduler as _scheduler

LOG = logging.getLogger("service.cli")

MODULE = "modules.job_digest"


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    Parse key=value strings into a dict.
    Values that look like JSON (true/false/null/number/object/array) are parsed.
    """
    out: dict[str, Any] = {}
    for raw in pairs:
        if "=" not in raw:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {raw!r})")
        k, v = raw.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {raw!r}")
        try:
            out[k] = json.loads(v)
        except json.JSONDecodeError:
            out[k] = v
    return out


@contextmanager
def _env_overrides(env: dict[str, str]):
    """Temporarily set environment variables."""
    old = {}
    try:
        for k, v in env.items():
            old[k] = os.environ.get(k)
            os.environ[k] = v
        yield
    finally:
        for k, v in old.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


def _print_table(rows: Iterable[tuple[str, str]], headers: tuple[str, str] = ("ID", "DETAILS")) -> None:
    """Very simple two-column table printer."""
    rows = list(rows)
    w0 = max(len(headers[0]), *(len(r[0]) for r in rows)) if rows else len(headers[0])
    w1 = max(len(headers[1]), *(len(r[1]) for r in rows)) if rows else len(headers[1])
    sep = f"+-{'-' * w0}-+-{'-' * w1}-+"
    print(sep)
    print(f"| {headers[0].ljust(w0)} | {headers[1].ljust(w1)} |")
    print(sep)
    for c0, c1 in rows:
        print(f"| {c0.ljust(w0)} | {c1.ljust(w1)} |")
    print(sep)


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat()


def _run_kwargs(args: argparse.Namespace) -> dict[str, Any]:
    kwargs = _parse_kv_pairs(args.kwargs or [])
    if args.sources:
        kwargs.setdefault("sources_path", args.sources)
    if args.include:
        kwargs["include"] = args.include
    if args.exclude:
        kwargs["exclude"] = args.exclude
    if args.max is not None:
        kwargs["max"] = args.max
    if args.debug:
        kwargs["debug"] = True
    if args.no_dedupe:
        kwargs["dedupe"] = False
    if args.reset:
        kwargs["reset"] = True
    if args.test:
        kwargs["test"] = True
    return kwargs


# ------------------------------ Subcommands ----------------------------------
def cmd_run(args: argparse.Namespace) -> int:
    start_time = time.monotonic()
    kwargs = _run_kwargs(args)
    LOG.debug("Run %s with kwargs=%s", MODULE, kwargs)

    env = {"JOB_DIGEST_DRY_RUN": "1"} if args.dry_run else {}
    try:
        with _env_overrides(env):
            meta, run_id = _runner.run_module_once(MODULE, kwargs=kwargs, trigger_type="adhoc")
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _now_iso(),
            "where": "cli.run",
            "module": MODULE,
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int((time.monotonic() - start_time) * 1000),
        })
        return 1

    meta = meta or {}
    print(meta.get("message", "DONE: run completed."))
    if meta.get("payload") is not None:
        print(json.dumps(meta["payload"], indent=2, ensure_ascii=False))
    LOG.debug("run_id=%s", run_id)
    return 0


def cmd_reset_seen(args: argparse.Namespace) -> int:
    try:
        settings = Settings.from_env_and_kwargs({"seen_path": args.seen_path})
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    SeenStore(settings.seen_path).reset()
    L.write_activity_log({"ts": _now_iso(), "event": "reset_seen", "path": settings.seen_path})
    print(f"Cleared seen store at {settings.seen_path}.")
    return 0


def cmd_list_sources(args: argparse.Namespace) -> int:
    try:
        settings = Settings.from_env_and_kwargs({"sources_path": args.sources})
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    rows = [(sc.name, f"{sc.url}  [{sc.item_selector}] limit={sc.limit}") for sc in settings.sources]
    _print_table(rows, headers=("SOURCE", "DETAILS"))
    return 0


def cmd_list_jobs(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
    except _config_schema.ConfigError as e:
        print(f"ERROR: failed to list jobs: {e}", file=sys.stderr)
        return 1
    rows = [
        (str(j["id"]), str(j.get("summary") or j.get("description") or json.dumps(j.get("trigger"), default=str)))
        for j in cfg["jobs"]
    ]
    if not rows:
        print("No jobs found in config.")
        return 0
    _print_table(rows, headers=("JOB", "DETAILS"))
    return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
        _config_schema.validate(cfg)
        # Trigger contents are checked by building them.
        for job in cfg["jobs"]:
            _scheduler.build_trigger(job["trigger"], _scheduler._resolve_timezone(cfg))
        Settings.from_env_and_kwargs({"sources_path": args.sources})
    except (ConfigError, ValueError) as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1
    print("OK: configuration is valid.")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the scheduler loop and the HTTP trigger until interrupted.
    uvicorn owns SIGINT/SIGTERM; the scheduler is stopped once it returns.
    """
    import uvicorn

    L.write_activity_log({"ts": _now_iso(), "event": "serve_start"})
    sched = None
    try:
        if not args.no_scheduler:
            sched = _scheduler.start(config_path=args.config)
            LOG.info("Scheduler started: %r", sched)
        uvicorn.run("service.trigger:app", host=args.host, port=args.port, log_level=os.getenv("LOG_LEVEL", "info").lower())
        return 0
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        LOG.exception("Fatal error in serve: %s", e)
        return 1
    finally:
        if sched is not None:
            sched.stop()
            sched.join(timeout=10.0)
        L.write_activity_log({"ts": _now_iso(), "event": "serve_stop"})


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m service.cli",
        description="job-digest command-line tools",
    )
    p.add_argument("--config", help="Path to schedule config (fallbacks to CONFIG_PATH env).")
    p.add_argument("--sources", help="Path to a JSON/YAML source list (fallbacks to JOB_DIGEST_SOURCES_PATH).")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("serve", help="Run the scheduler loop and the HTTP trigger.")
    sp.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    sp.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    sp.add_argument("--no-scheduler", action="store_true", help="Serve the HTTP trigger only.")
    sp.set_defaults(func=cmd_serve)

    sp = sub.add_parser("run", help="Run one extraction/delivery pass now.")
    sp.add_argument("--include", help="Keep only listings containing this text.")
    sp.add_argument("--exclude", help="Drop listings containing this text.")
    sp.add_argument("--max", type=int, help="Cap on delivered listings (default 10).")
    sp.add_argument("--debug", action="store_true", help="Print JSON diagnostics.")
    sp.add_argument("--no-dedupe", action="store_true", help="Skip the seen-store filter.")
    sp.add_argument("--reset", action="store_true", help="Clear the seen store first.")
    sp.add_argument("--test", action="store_true", help="No dedupe, no delivery; print a sample.")
    sp.add_argument("--dry-run", action="store_true", help="Do everything except the Telegram call.")
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Extra settings for the run, e.g. page_source=static static_dir=fixtures.",
    )
    sp.set_defaults(func=cmd_run)

    sp = sub.add_parser("reset-seen", help="Clear the seen store.")
    sp.add_argument("--seen-path", help="Seen-state file (fallbacks to JOB_DIGEST_SEEN_PATH).")
    sp.set_defaults(func=cmd_reset_seen)

    sp = sub.add_parser("list-sources", help="Print the configured page sources.")
    sp.set_defaults(func=cmd_list_sources)

    sp = sub.add_parser("list-jobs", help="Print all scheduled jobs from config.")
    sp.set_defaults(func=cmd_list_jobs)

    sp = sub.add_parser("validate-config", help="Verify schedule config and source list.")
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
