from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from .models import RawRecord

RECORD_SEPARATOR = "\n\n"


def format_record(record: RawRecord) -> str:
    """
    One chat block per listing:

        💼 {title} at {company} ({location})
        🔗 {link}
    """
    title = record.title or "Untitled"
    company = f" at {record.company}" if record.company else ""
    location = f" ({record.location})" if record.location else ""
    link = record.link or "No link"
    return f"💼 {title}{company}{location}\n🔗 {link}"


def format_message(records: Iterable[RawRecord]) -> str:
    return RECORD_SEPARATOR.join(format_record(r) for r in records)


def counts_by_source(records: Iterable[RawRecord]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for r in records:
        key = r.source or "Unknown"
        counts[key] = counts.get(key, 0) + 1
    return counts


def diagnostics(
    message: str,
    *,
    counts: dict[str, int],
    total_scraped: int,
    total_filtered: int,
    total_after_dedupe: int,
    sample: Sequence[RawRecord] | None = None,
    sample_links: Sequence[str] | None = None,
    failures: Sequence[Any] | None = None,
) -> dict[str, Any]:
    """JSON body for debug/test responses."""
    body: dict[str, Any] = {
        "message": message,
        "countsBySource": dict(counts),
        "totalScraped": total_scraped,
        "totalFiltered": total_filtered,
        "totalAfterDedupe": total_after_dedupe,
    }
    if sample is not None:
        body["sample"] = [r.to_dict() for r in sample]
    if sample_links is not None:
        body["sampleLinks"] = list(sample_links)
    if failures:
        body["failedSources"] = [
            {"source": getattr(f, "source", ""), "url": getattr(f, "url", ""), "error": str(f)} for f in failures
        ]
    return body
