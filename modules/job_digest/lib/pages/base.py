from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import cached_property
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ..config import Settings, SourceConfig

PARSER = "html5lib"


@dataclass
class RenderedPage:
    """
    A fetched/rendered listing page: final URL plus document HTML.
    `soup` is parsed lazily and reused by every query against the page.
    """

    url: str
    html: str
    _soup: BeautifulSoup | None = field(default=None, repr=False, compare=False)

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = BeautifulSoup(self.html, PARSER)
        return self._soup

    @cached_property
    def base_url(self) -> str:
        """
        Address relative links resolve against: the document's <base href>
        (itself resolved against the page URL) when present, else the page URL.
        """
        base = self.soup.find("base", href=True)
        if base is not None:
            href = str(base.get("href") or "").strip()
            if href:
                return urljoin(self.url, href)
        return self.url

    def resolve(self, href: str | None) -> str:
        href = (href or "").strip()
        if not href:
            return ""
        return urljoin(self.base_url, href)


class PageSource(ABC):
    """
    Rendering surface for listing pages.

    Contract:
      - render(config) navigates to config.url and returns a RenderedPage.
      - Implementations that can wait (browsers) wait up to config.timeout for
        config.item_selector; a wait that runs out, or a page that cannot be
        obtained, raises SourceUnavailable. No retries.
    """

    # Concrete subclasses MUST set this to a stable string, e.g. "http", "browser"
    kind: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> PageSource:
        return cls()

    @abstractmethod
    def render(self, config: SourceConfig) -> RenderedPage:
        raise NotImplementedError

    def close(self) -> None:  # noqa: B027
        """Release any held resources (sessions, browsers)."""
