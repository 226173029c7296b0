# job_digest/pages/__init__.py
from __future__ import annotations

from .base import PageSource, RenderedPage
from .browser import BrowserPageSource
from .http import HttpPageSource
from .registry import all_kinds, get, register
from .static import StaticPageSource

__all__ = [
    "BrowserPageSource",
    "HttpPageSource",
    "PageSource",
    "RenderedPage",
    "StaticPageSource",
    "all_kinds",
    "get",
    "register",
]
