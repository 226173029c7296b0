from __future__ import annotations


class DigestError(Exception):
    """Base exception for job_digest failures."""


class SourceUnavailable(DigestError):
    """
    A source produced no listing containers: the page could not be fetched,
    or `item_selector` never matched within the source's timeout.
    """

    def __init__(self, source: str, url: str, selector: str, reason: str | None = None) -> None:
        self.source = source
        self.url = url
        self.selector = selector
        self.reason = reason
        msg = f"{source}: no items found at {url} for item selector {selector!r}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class MalformedSeenState(DigestError):
    """The persisted seen-state document is unreadable or has the wrong shape."""
