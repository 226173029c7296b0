from __future__ import annotations

import os
import re
from collections.abc import Mapping

from ..config import Settings, SourceConfig
from ..errors import SourceUnavailable
from .base import PageSource, RenderedPage
from .registry import register


def slugify(s: str) -> str:
    s = re.sub(r"[^0-9a-zA-Z]+", "_", (s or "").lower())
    return re.sub(r"_{2,}", "_", s).strip("_")


@register
class StaticPageSource(PageSource):
    """
    Zero-network page source replaying saved HTML.

    Pages are looked up by source URL first, then by source name. With
    `static_dir`, a missing entry is read from `<static_dir>/<slug(name)>.html`
    (e.g. "We Work Remotely" -> we_work_remotely.html). The page URL is the
    source URL, so relative links resolve as they would live.
    """

    kind = "static"

    def __init__(self, pages: Mapping[str, str] | None = None, static_dir: str | None = None) -> None:
        self.pages = dict(pages or {})
        self.static_dir = static_dir
        self.rendered: list[str] = []  # source names, in render order

    @classmethod
    def from_settings(cls, settings: Settings) -> StaticPageSource:
        return cls(static_dir=settings.static_dir)

    def render(self, config: SourceConfig) -> RenderedPage:
        self.rendered.append(config.name)
        html = self.pages.get(config.url)
        if html is None:
            html = self.pages.get(config.name)
        if html is None and self.static_dir:
            path = os.path.join(self.static_dir, f"{slugify(config.name)}.html")
            try:
                with open(path, encoding="utf-8") as f:
                    html = f.read()
            except OSError as e:
                raise SourceUnavailable(config.name, config.url, config.item_selector, reason=f"no saved page: {e}") from e
        if html is None:
            raise SourceUnavailable(config.name, config.url, config.item_selector, reason="no saved page")
        return RenderedPage(url=config.url, html=html)
