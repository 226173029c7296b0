"""
DOM-to-record mapping for listing pages.

For each item container on a rendered page the Extractor resolves a title,
an absolute link, a company and a location by walking ordered selector
chains (first non-empty match wins) and a fixed set of generic fallbacks,
then cleans the title text:

  1. collapse whitespace and trim
  2. cut at each `strip_after` marker, in order
  3. blank out every `title_remove_patterns` match
  4. collapse immediately repeated words ("Senior Senior" -> "Senior")
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from bs4.element import Tag

from .config import SourceConfig
from .errors import SourceUnavailable
from .models import RawRecord
from .pages.base import RenderedPage
from .utils import normalize_text

# Children of the link element that usually carry the visible title.
TITLE_CHILD_SELECTORS = ("span.title", "h1", "h2", "h3", "strong")

COMPANY_FALLBACK_SELECTORS = ("span.company", ".company", ".company-name", "[class*='company']")
LOCATION_FALLBACK_SELECTORS = ("span.region", ".region", "span.location", ".location", "[class*='location']")
COMPANY_ATTRS = ("data-company", "data-company-name")
LOCATION_ATTRS = ("data-location", "data-job-location")

# ASCII word boundaries: non-ASCII words ("Café Café") are left as written.
_REPEATED_WORD_RE = re.compile(r"\b(\w+)(?:\s+\1\b)+", re.IGNORECASE | re.ASCII)


# =============================================================================
# TEXT HELPERS
# =============================================================================
def strip_after(value: str, markers: Iterable[str]) -> str:
    result = value
    for marker in markers:
        if marker and marker in result:
            result = result.split(marker, 1)[0].strip()
    return result


def clean_title(value: str, markers: Iterable[str] = (), patterns: Iterable[re.Pattern[str]] = ()) -> str:
    """
    Deterministic title cleanup, e.g. with markers ["•"]:
        "Senior Senior Engineer • Remote" -> "Senior Engineer"
    """
    title = strip_after(normalize_text(value), markers)
    for pattern in patterns:
        title = pattern.sub(" ", title)
    title = normalize_text(title)
    title = _REPEATED_WORD_RE.sub(r"\1", title)
    return normalize_text(title)


def first_text(root: Tag | None, selectors: Sequence[str]) -> str:
    """Trimmed text of the first selector (in order) whose match has text."""
    if root is None:
        return ""
    for selector in selectors:
        el = root.select_one(selector)
        text = el.get_text().strip() if el is not None else ""
        if text:
            return text
    return ""


def first_element(root: Tag | None, selectors: Sequence[str]) -> Tag | None:
    if root is None:
        return None
    for selector in selectors:
        el = root.select_one(selector)
        if el is not None:
            return el
    return None


def attr(el: Tag | None, name: str) -> str:
    if el is None:
        return ""
    value = el.get(name)
    if isinstance(value, list):  # multi-valued attributes (class, rel)
        value = " ".join(value)
    return (value or "").strip()


# =============================================================================
# EXTRACTOR
# =============================================================================
class Extractor:
    """
    Maps one rendered page to RawRecords according to a SourceConfig.

    Contract:
      - at most `config.limit` containers are read, in document order
      - every record carries `source=config.name`
      - records with neither title nor link are dropped
      - zero containers raises SourceUnavailable (no retry)
    """

    def extract(self, page: RenderedPage, config: SourceConfig) -> list[RawRecord]:
        containers = page.soup.select(config.item_selector, limit=config.limit)
        if not containers:
            raise SourceUnavailable(config.name, config.url, config.item_selector)

        records: list[RawRecord] = []
        for container in containers[: config.limit]:
            record = self._extract_one(page, config, container)
            if record.title or record.link:
                records.append(record)
        return records

    # ---- internals ----

    def _extract_one(self, page: RenderedPage, config: SourceConfig, job: Tag) -> RawRecord:
        title_selectors = config.title_selectors
        title_el = job.select_one(title_selectors[0]) if title_selectors else None
        link_el = first_element(job, config.link_selectors)

        raw_title = first_text(job, title_selectors) or self._fallback_title(link_el, title_el)
        title = clean_title(raw_title, config.strip_after, config.compiled_remove_patterns)

        href = attr(link_el, "href") or attr(title_el, "href")
        link = page.resolve(href)

        company = self._resolve_field(job, link_el, config.company_selectors, COMPANY_FALLBACK_SELECTORS, COMPANY_ATTRS)
        location = self._resolve_field(
            job, link_el, config.location_selectors, LOCATION_FALLBACK_SELECTORS, LOCATION_ATTRS
        )

        return RawRecord(title=title, link=link, company=company, location=location, source=config.name)

    @staticmethod
    def _fallback_title(link_el: Tag | None, title_el: Tag | None) -> str:
        return (
            first_text(link_el, TITLE_CHILD_SELECTORS)
            or attr(link_el, "aria-label")
            or attr(link_el, "title")
            or (link_el.get_text().strip() if link_el is not None else "")
            or attr(title_el, "aria-label")
            or attr(title_el, "title")
        )

    @staticmethod
    def _resolve_field(
        job: Tag,
        link_el: Tag | None,
        selectors: Sequence[str],
        fallbacks: Sequence[str],
        attrs: Sequence[str],
    ) -> str:
        text = first_text(job, selectors) or first_text(link_el, selectors) or first_text(job, fallbacks)
        if not text:
            text = next((v for v in (attr(job, a) for a in attrs) if v), "")
        return normalize_text(text)


def extract(page: RenderedPage, config: SourceConfig) -> list[RawRecord]:
    """Module-level convenience around Extractor().extract."""
    return Extractor().extract(page, config)
