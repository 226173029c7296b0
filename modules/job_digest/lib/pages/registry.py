from __future__ import annotations

from .base import PageSource

# In-process registry: kind -> page source class
_REGISTRY: dict[str, type[PageSource]] = {}


def register(cls: type[PageSource]) -> type[PageSource]:
    """
    Class decorator registering a page source under its `kind`.
    """
    kind = getattr(cls, "kind", "") or ""
    if not isinstance(kind, str) or not kind.strip():
        raise ValueError(f"Cannot register page source {cls!r}: missing/empty 'kind'.")
    key = kind.strip().lower()
    if key in _REGISTRY and _REGISTRY[key] is not cls:
        raise ValueError(f"Page source kind {key!r} already registered to {_REGISTRY[key]!r}.")
    _REGISTRY[key] = cls
    return cls


def get(kind: str) -> type[PageSource]:
    """
    Look up a page source class by kind (case-insensitive).
    Raises KeyError if not found.
    """
    key = (kind or "").strip().lower()
    if key not in _REGISTRY:
        raise KeyError(f"No page source registered for kind {kind!r}.")
    return _REGISTRY[key]


def all_kinds() -> dict[str, type[PageSource]]:
    return dict(_REGISTRY)
