# modules/job_digest/lib/pages/browser.py
from __future__ import annotations

import logging

from ..config import DEFAULT_USER_AGENT, ConfigError, Settings, SourceConfig
from ..errors import SourceUnavailable
from .base import PageSource, RenderedPage
from .registry import register

log = logging.getLogger(__name__)


@register
class BrowserPageSource(PageSource):
    """
    Headless Chromium via Playwright (optional extra: pip install 'job-digest[browser]').

    Per source: launch, navigate (domcontentloaded), wait for `item_selector`
    up to the source timeout, snapshot the DOM and close. The snapshot's URL
    is the browser's final location, so relative links resolve exactly as the
    page would resolve them.
    """

    kind = "browser"

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, engine: str = "chromium") -> None:
        self.user_agent = user_agent
        self.engine = engine

    @classmethod
    def from_settings(cls, settings: Settings) -> BrowserPageSource:
        return cls(user_agent=settings.user_agent)

    def render(self, config: SourceConfig) -> RenderedPage:
        try:
            from playwright.sync_api import Error as PlaywrightError
            from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
            from playwright.sync_api import sync_playwright
        except ImportError as e:
            raise ConfigError("page_source 'browser' requires playwright (pip install 'job-digest[browser]').") from e

        timeout_ms = int(config.timeout * 1000)
        with sync_playwright() as p:
            browser_type = getattr(p, self.engine)  # "chromium" | "firefox" | "webkit"
            browser = None
            try:
                browser = browser_type.launch(headless=True, args=["--no-sandbox"])
                context = browser.new_context(user_agent=self.user_agent)
                page = context.new_page()
                page.goto(config.url, wait_until="domcontentloaded", timeout=timeout_ms)
                page.wait_for_selector(config.item_selector, timeout=timeout_ms)
                return RenderedPage(url=page.url, html=page.content())
            except PlaywrightTimeoutError as e:
                raise SourceUnavailable(
                    config.name, config.url, config.item_selector, reason=f"timed out after {config.timeout:g}s"
                ) from e
            except PlaywrightError as e:
                raise SourceUnavailable(config.name, config.url, config.item_selector, reason=str(e)) from e
            finally:
                try:
                    if browser is not None:
                        browser.close()
                except PlaywrightError:
                    log.debug("browser.close() failed for %s", config.name, exc_info=True)
