from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any


@dataclass(frozen=True)
class RawRecord:
    """
    One listing as read off a source page (pre-filter, pre-dedupe).
    Dedupe is performed by SeenStore on `link` alone.
    """

    title: str
    link: str
    company: str = ""
    location: str = ""
    source: str = ""  # SourceConfig.name, e.g. "Remote OK"

    def with_source(self, source: str) -> RawRecord:
        return replace(self, source=source)

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class RunOutcome:
    """
    Result of one pipeline pass, shaped for the trigger endpoint.
    - message: the plain-text status line
    - payload: JSON diagnostics (debug/test runs) or None for plain text
    - delivered: records handed to the notifier (empty unless a message was sent)
    """

    message: str
    payload: dict[str, Any] | None = None
    delivered: list[RawRecord] = field(default_factory=list)
    counts_by_source: dict[str, int] = field(default_factory=dict)
    total_scraped: int = 0
    total_filtered: int = 0
    total_after_dedupe: int = 0

    def to_meta(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "counts_by_source": dict(self.counts_by_source),
            "total_scraped": self.total_scraped,
            "total_filtered": self.total_filtered,
            "total_after_dedupe": self.total_after_dedupe,
            "delivered": len(self.delivered),
        }
