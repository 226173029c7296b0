# modules/job_digest/lib/pages/http.py
from __future__ import annotations

import requests

from ..config import Settings, SourceConfig
from ..errors import SourceUnavailable
from ..http_client import HttpClient
from .base import PageSource, RenderedPage
from .registry import register


@register
class HttpPageSource(PageSource):
    """
    Plain GET of the listing page; no script execution.

    Suitable for boards that render listings server-side. The source's
    `timeout` bounds the request; whether `item_selector` matched is decided
    by the Extractor on the returned document.
    """

    kind = "http"

    def __init__(self, client: HttpClient | None = None) -> None:
        self._client = client or HttpClient()

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpPageSource:
        return cls(HttpClient(user_agent=settings.user_agent))

    def render(self, config: SourceConfig) -> RenderedPage:
        try:
            html, final_url = self._client.get_page(config.url, timeout=config.timeout)
        except requests.Timeout as e:
            raise SourceUnavailable(
                config.name, config.url, config.item_selector, reason=f"timed out after {config.timeout:g}s"
            ) from e
        except requests.RequestException as e:
            raise SourceUnavailable(config.name, config.url, config.item_selector, reason=repr(e)) from e
        return RenderedPage(url=final_url, html=html)

    def close(self) -> None:
        self._client.close()
