from __future__ import annotations

from collections.abc import Iterable

from .models import RawRecord

# Titles some boards emit for non-listing rows (company cards, promos).
NON_LISTING_TITLES = frozenset({"view company profile"})


def haystack(record: RawRecord) -> str:
    """Lowercased `title company location`, used for include/exclude matching."""
    return f"{record.title} {record.company or ''} {record.location or ''}".lower().strip()


def is_listing(record: RawRecord) -> bool:
    if record.title.lower() in NON_LISTING_TITLES:
        return False
    return bool(record.title or record.link)


def apply(
    records: Iterable[RawRecord],
    include: str | None = None,
    exclude: str | None = None,
) -> list[RawRecord]:
    """
    Keep records that are real listings and pass the substring predicates.

    include: keep only records whose haystack contains it (case-insensitive)
    exclude: drop records whose haystack contains it (case-insensitive)

    Relative order of the survivors is preserved.
    """
    inc = (include or "").lower()
    exc = (exclude or "").lower()

    out: list[RawRecord] = []
    for record in records:
        if not is_listing(record):
            continue
        text = haystack(record)
        if inc and inc not in text:
            continue
        if exc and exc in text:
            continue
        out.append(record)
    return out
