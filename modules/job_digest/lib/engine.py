"""
Pipeline for one job_digest pass: scrape all sources, filter, dedupe against
the seen store, and deliver the top records as one chat message.

Features:
  - Run flags: include/exclude, max, debug, dedupe, reset, test
  - Failure policy per Settings.skip_failed_sources (abort by default)
  - Dependency injection for testability (page_source, notify, store)
  - Structured logging via `logging_bridge`

Delivery is at-most-once: new links are committed to the seen store before
the message is sent, so a failed send is not retried by the next run.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from . import filters, logging_bridge, render
from .aggregator import Aggregator
from .config import RunFlags, Settings
from .errors import SourceUnavailable
from .models import RawRecord, RunOutcome
from .pages.base import PageSource
from .seen_store import SeenStore

NO_NEW_MESSAGE = "No new items found."
TEST_MESSAGE = "Test mode: returning items without sending Telegram."
SENT_MESSAGE = "Message sent to Telegram!"

DEBUG_LOG_ITEMS = 20
SAMPLE_LINKS = 5
TEST_SAMPLE = 10


# =============================================================================
# DEFAULT COLLABORATORS (PRODUCTION)
# =============================================================================
def _default_page_source(settings: Settings) -> PageSource:
    """Resolve the page source class from the registry and build it from settings."""
    from .pages.registry import get as get_page_source_class

    return get_page_source_class(settings.page_source).from_settings(settings)


def _default_notify(text: str) -> Any:
    """Send through the service's Telegram notifier."""
    from service.notifier import send_text

    return send_text(text)


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_once(
    settings: Settings,
    flags: RunFlags | None = None,
    *,
    page_source: PageSource | None = None,
    notify: Callable[[str], Any] | None = None,
    store: SeenStore | None = None,
) -> RunOutcome:
    """
    Run one complete cycle.

    Args:
        settings: sources, seen-store location/bound, page source kind, failure policy.
        flags: per-run switches (defaults: dedupe on, max 10).
        page_source / notify / store: optional overrides (tests, embedding).

    Returns:
        RunOutcome with the status line and, for debug/test runs, a JSON payload.

    Raises:
        SourceUnavailable: a source produced no items (unless skipping failures).
        Whatever `notify` raises (DeliveryFailure from the Telegram notifier).
    """
    start_ns = time.perf_counter_ns()
    flags = flags or RunFlags()
    store = store or SeenStore(settings.seen_path)
    notify_func = notify or _default_notify

    if flags.reset:
        store.reset()

    # -------------------------------------------------------------------------
    # SCRAPE
    # -------------------------------------------------------------------------
    owns_source = page_source is None
    source = page_source or _default_page_source(settings)
    aggregator = Aggregator(
        source,
        skip_failed=settings.skip_failed_sources,
        max_workers=settings.max_workers,
    )
    try:
        items = aggregator.run(settings.sources)
    except SourceUnavailable as e:
        logging_bridge.error({
            "component": "job_digest.engine",
            "op": "run_failed",
            "source": e.source,
            "url": e.url,
            "selector": e.selector,
            "error": str(e),
        })
        raise
    finally:
        if owns_source:
            source.close()

    counts = render.counts_by_source(items)
    if flags.debug:
        logging_bridge.activity({
            "component": "job_digest.engine",
            "op": "scraped_items",
            "items": [r.to_dict() for r in items[:DEBUG_LOG_ITEMS]],
        })

    # -------------------------------------------------------------------------
    # FILTER + DEDUPE
    # -------------------------------------------------------------------------
    filtered = filters.apply(items, flags.include, flags.exclude)
    skip_dedupe = not flags.dedupe or flags.test
    deduped = filtered if skip_dedupe else store.filter_new(filtered, settings.seen_bound)
    top = deduped[: max(1, flags.max_items)]

    totals = {
        "counts": counts,
        "total_scraped": len(items),
        "total_filtered": len(filtered),
        "total_after_dedupe": len(deduped),
    }
    logging_bridge.activity({
        "component": "job_digest.engine",
        "op": "summary",
        "found_by_source": counts,
        "failed_sources": [f.source for f in aggregator.failures],
        "total_scraped": len(items),
        "total_filtered": len(filtered),
        "total_after_dedupe": len(deduped),
        "selected": len(top),
        "flags": {
            "include": flags.include,
            "exclude": flags.exclude,
            "max": flags.max_items,
            "dedupe": not skip_dedupe,
            "reset": flags.reset,
            "test": flags.test,
        },
        "durations_us": aggregator.durations_us,
        "total_us": int((time.perf_counter_ns() - start_ns) // 1000),
    })

    # -------------------------------------------------------------------------
    # NOTHING NEW
    # -------------------------------------------------------------------------
    if not top:
        payload = None
        if flags.debug:
            payload = render.diagnostics(
                NO_NEW_MESSAGE,
                **totals,
                sample_links=[r.link for r in items[:SAMPLE_LINKS]],
                failures=aggregator.failures,
            )
        return _outcome(NO_NEW_MESSAGE, payload, [], **totals)

    # -------------------------------------------------------------------------
    # TEST MODE: no dedupe, no delivery
    # -------------------------------------------------------------------------
    if flags.test:
        payload = render.diagnostics(
            TEST_MESSAGE,
            **totals,
            sample=top[:TEST_SAMPLE],
            failures=aggregator.failures,
        )
        return _outcome(TEST_MESSAGE, payload, [], **totals)

    # -------------------------------------------------------------------------
    # DELIVER
    # -------------------------------------------------------------------------
    message = render.format_message(top)
    try:
        notify_func(message)
    except Exception as e:
        logging_bridge.error({
            "component": "job_digest.engine",
            "op": "deliver",
            "records": len(top),
            "error": repr(e),
        })
        raise

    logging_bridge.activity({
        "component": "job_digest.engine",
        "op": "delivered",
        "records": len(top),
        "by_source": render.counts_by_source(top),
    })

    payload = None
    if flags.debug:
        payload = render.diagnostics(SENT_MESSAGE, **totals, sample=top, failures=aggregator.failures)
    return _outcome(SENT_MESSAGE, payload, top, **totals)


# =============================================================================
# HELPER
# =============================================================================
def _outcome(
    message: str,
    payload: dict[str, Any] | None,
    delivered: list[RawRecord],
    *,
    counts: dict[str, int],
    total_scraped: int,
    total_filtered: int,
    total_after_dedupe: int,
) -> RunOutcome:
    return RunOutcome(
        message=message,
        payload=payload,
        delivered=delivered,
        counts_by_source=counts,
        total_scraped=total_scraped,
        total_filtered=total_filtered,
        total_after_dedupe=total_after_dedupe,
    )
