from __future__ import annotations

import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from . import logging_bridge
from .config import SourceConfig
from .errors import SourceUnavailable
from .extractor import Extractor
from .models import RawRecord
from .pages.base import PageSource


class Aggregator:
    """
    Runs the Extractor over every configured source and concatenates the
    records in source-declaration order, each tagged with its source name.

    Failure policy:
      - skip_failed=False (default): the first SourceUnavailable aborts the run.
      - skip_failed=True: the failure is logged, kept in `failures`, and the
        remaining sources still run.

    With max_workers > 1 sources are fetched in parallel; output order is
    still declaration order.
    """

    def __init__(
        self,
        page_source: PageSource,
        extractor: Extractor | None = None,
        *,
        skip_failed: bool = False,
        max_workers: int = 1,
    ) -> None:
        self.page_source = page_source
        self.extractor = extractor or Extractor()
        self.skip_failed = skip_failed
        self.max_workers = max(1, int(max_workers))
        self.failures: list[SourceUnavailable] = []
        self.durations_us: dict[str, int] = {}

    def run(self, sources: Sequence[SourceConfig]) -> list[RawRecord]:
        self.failures = []
        self.durations_us = {}

        if self.max_workers == 1 or len(sources) <= 1:
            per_source = [self._run_source(sc) for sc in sources]
        else:
            per_source = self._run_parallel(sources)

        out: list[RawRecord] = []
        for records in per_source:
            out.extend(records)
        return out

    # ---- internals ----

    def _run_parallel(self, sources: Sequence[SourceConfig]) -> list[list[RawRecord]]:
        results: list[list[RawRecord]] = [[] for _ in sources]
        errors: list[SourceUnavailable | None] = [None] * len(sources)

        def _task(idx: int, sc: SourceConfig) -> None:
            try:
                results[idx] = self._run_source(sc)
            except SourceUnavailable as e:
                errors[idx] = e

        with ThreadPoolExecutor(max_workers=min(len(sources), self.max_workers)) as pool:
            futures = [pool.submit(_task, i, sc) for i, sc in enumerate(sources)]
            for fut in futures:
                fut.result()

        order = {sc.name: i for i, sc in enumerate(sources)}
        self.failures.sort(key=lambda e: order.get(e.source, len(order)))

        # Report the failure of the earliest-declared source, as a sequential run would.
        first_error = next((e for e in errors if e is not None), None)
        if first_error is not None:
            raise first_error
        return results

    def _run_source(self, sc: SourceConfig) -> list[RawRecord]:
        t0 = time.perf_counter_ns()
        try:
            page = self.page_source.render(sc)
            records = self.extractor.extract(page, sc)
        except SourceUnavailable as e:
            self.durations_us[sc.name] = int((time.perf_counter_ns() - t0) // 1000)
            logging_bridge.error({
                "component": "job_digest.aggregator",
                "op": "source_unavailable",
                "source": sc.name,
                "url": sc.url,
                "selector": sc.item_selector,
                "error": str(e),
                "skipped": self.skip_failed,
            })
            if not self.skip_failed:
                raise
            self.failures.append(e)
            return []

        tagged = [r if r.source == sc.name else r.with_source(sc.name) for r in records]
        dt_us = int((time.perf_counter_ns() - t0) // 1000)
        self.durations_us[sc.name] = dt_us
        logging_bridge.activity({
            "component": "job_digest.aggregator",
            "op": "source_done",
            "source": sc.name,
            "count": len(tagged),
            "duration_us": dt_us,
        })
        return tagged
