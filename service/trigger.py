# service/trigger.py
"""
HTTP trigger for one job_digest pass.

    GET /api/run?include=&exclude=&max=10&debug=1&dedupe=0&reset=1&test=1
    GET /api/healthz

Plain-text status line by default; JSON diagnostics for debug/test runs.
Extraction and delivery failures come back as 502 with the error text.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from modules.job_digest.lib import engine
from modules.job_digest.lib.config import ConfigError, RunFlags, Settings
from modules.job_digest.lib.errors import SourceUnavailable
from modules.job_digest.lib.pages.base import PageSource
from service import logging_utils as L
from service.notifier import DeliveryFailure

logger = logging.getLogger(__name__)

app = FastAPI(title="job-digest trigger")


# ---- Dependencies (overridable in tests) --------------------------------------


def get_settings() -> Settings:
    return Settings.from_env_and_kwargs({})


def get_page_source() -> Optional[PageSource]:
    return None  # engine default: registry lookup by Settings.page_source


def get_notify() -> Optional[Callable[[str], Any]]:
    return None  # engine default: service.notifier.send_text


# ---- Routes -----------------------------------------------------------------


@app.get("/api/healthz")
def healthz() -> dict[str, bool]:
    return {"ok": True}


@app.get("/api/run")
def run(
    include: Optional[str] = Query(None, description="Case-insensitive substring a listing must contain"),
    exclude: Optional[str] = Query(None, description="Case-insensitive substring that drops a listing"),
    max_items: Optional[str] = Query(None, alias="max", description="Cap on delivered listings (default 10)"),
    debug: Optional[str] = Query(None, description="1 = JSON diagnostics"),
    dedupe: Optional[str] = Query(None, description="0 = skip the seen-store filter"),
    reset: Optional[str] = Query(None, description="1 = clear the seen store first"),
    test: Optional[str] = Query(None, description="1 = no dedupe, no delivery; JSON sample"),
    settings: Settings = Depends(get_settings),
    page_source: Optional[PageSource] = Depends(get_page_source),
    notify: Optional[Callable[[str], Any]] = Depends(get_notify),
) -> Response:
    try:
        flags = RunFlags.from_params({
            "include": include,
            "exclude": exclude,
            "max": max_items,
            "debug": debug,
            "dedupe": dedupe,
            "reset": reset,
            "test": test,
        })
    except ConfigError as e:
        return PlainTextResponse(f"Bad request: {e}", status_code=400)

    try:
        outcome = engine.run_once(settings, flags, page_source=page_source, notify=notify)
    except SourceUnavailable as e:
        return _failure(flags, 502, str(e), source=e.source, url=e.url, selector=e.selector)
    except DeliveryFailure as e:
        return _failure(flags, 502, str(e), status=e.status, retry_after=e.retry_after)

    if outcome.payload is not None:
        return JSONResponse(outcome.payload)
    return PlainTextResponse(outcome.message)


@app.exception_handler(ConfigError)
def _config_error(request: Request, exc: ConfigError) -> Response:
    logger.error("Invalid job_digest configuration: %s", exc)
    return PlainTextResponse(f"Configuration error: {exc}", status_code=500)


def _failure(flags: RunFlags, status_code: int, message: str, **details: Any) -> Response:
    L.write_error_log({"where": "trigger.run", "error": message, **details})
    if flags.debug or flags.test:
        return JSONResponse({"error": message, **details}, status_code=status_code)
    return PlainTextResponse(f"Run failed: {message}", status_code=status_code)
