from __future__ import annotations

import os
import re
from typing import Any

_WS_RE = re.compile(r"\s+")


def normalize_text(value: str | None) -> str:
    """
    Collapse whitespace runs to single spaces and trim.
    """
    if not value:
        return ""
    return _WS_RE.sub(" ", str(value)).strip()


def split_selectors(value: str | None) -> list[str]:
    """
    Split a comma-separated selector chain into its ordered, non-empty parts.

    Commas inside brackets or parentheses (e.g. ``a[href*='a,b']`` or
    ``:is(h2, h3)``) do not split.
    """
    if not value:
        return []
    parts: list[str] = []
    buf: list[str] = []
    depth = 0
    quote = ""
    for ch in value:
        if quote:
            buf.append(ch)
            if ch == quote:
                quote = ""
            continue
        if ch in "'\"":
            quote = ch
        elif ch in "([":
            depth += 1
        elif ch in ")]":
            depth = max(0, depth - 1)
        elif ch == "," and depth == 0:
            parts.append("".join(buf).strip())
            buf = []
            continue
        buf.append(ch)
    parts.append("".join(buf).strip())
    return [p for p in parts if p]


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def getenv_str(name: str, default: str | None = None) -> str | None:
    val = os.getenv(name)
    return val if val not in (None, "") else default
