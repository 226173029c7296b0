from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import soupsieve

from .utils import getenv_str, split_selectors, truthy

log = logging.getLogger(__name__)

try:
    import yaml  # type: ignore
except Exception:  # pragma: no cover
    yaml = None  # YAML source files optional


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env/files cannot form a valid configuration."""


# -----------------------------
# Defaults
# -----------------------------
DEFAULT_URL = "https://remotive.com/remote-jobs"
DEFAULT_ITEM_SELECTOR = ".job-tile"
DEFAULT_TITLE_SELECTOR = "h2, h3, a"
DEFAULT_LINK_SELECTOR = "a"
DEFAULT_LIMIT = 5
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_STRIP_AFTER = ("•", "|")

DEFAULT_SEEN_PATH = "data/seen.json"
DEFAULT_SEEN_BOUND = 50
DEFAULT_MAX_ITEMS = 10
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
PAGE_SOURCE_KINDS = ("http", "browser", "static")


# -----------------------------
# Models
# -----------------------------
@dataclass(frozen=True)
class SourceConfig:
    """
    Declarative description of one listing page and how to read items off it.

    Selector fields other than `item_selector` are comma-separated fallback
    chains: each part is tried in order and the first non-empty match wins.

    `title_remove_patterns` are compiled once here (case-insensitive). A
    pattern that fails to compile is logged and left out of
    `compiled_remove_patterns`; it is never reported to callers.
    """

    name: str
    url: str = DEFAULT_URL
    item_selector: str = DEFAULT_ITEM_SELECTOR
    title_selector: str = DEFAULT_TITLE_SELECTOR
    link_selector: str = DEFAULT_LINK_SELECTOR
    company_selector: str = ""
    location_selector: str = ""
    limit: int = DEFAULT_LIMIT
    timeout: float = DEFAULT_TIMEOUT_S  # seconds
    strip_after: tuple[str, ...] = DEFAULT_STRIP_AFTER
    title_remove_patterns: tuple[str, ...] = ()
    compiled_remove_patterns: tuple[re.Pattern[str], ...] = field(
        init=False, repr=False, compare=False, default=()
    )

    def __post_init__(self) -> None:
        compiled: list[re.Pattern[str]] = []
        for pattern in self.title_remove_patterns:
            try:
                compiled.append(re.compile(pattern, re.IGNORECASE))
            except re.error as e:
                log.warning("source %r: skipping invalid title pattern %r: %s", self.name, pattern, e)
        object.__setattr__(self, "compiled_remove_patterns", tuple(compiled))

    # ------------- convenience -------------
    @property
    def title_selectors(self) -> list[str]:
        return split_selectors(self.title_selector)

    @property
    def link_selectors(self) -> list[str]:
        return split_selectors(self.link_selector)

    @property
    def company_selectors(self) -> list[str]:
        return split_selectors(self.company_selector)

    @property
    def location_selectors(self) -> list[str]:
        return split_selectors(self.location_selector)

    @classmethod
    def from_mapping(cls, item: Mapping[str, Any], *, index: int = 0) -> SourceConfig:
        """
        Build from a config-file object. Both snake_case keys and the camelCase
        keys common in JSON source lists are accepted; `timeoutMs` is
        converted to seconds.
        """
        if not isinstance(item, Mapping):
            raise ConfigError(f"Source[{index}] must be an object.")

        def pick(*keys: str, default: Any = None) -> Any:
            for k in keys:
                if k in item and item[k] is not None:
                    return item[k]
            return default

        name = str(pick("name", "source", default="")).strip()
        if not name:
            raise ConfigError(f"Source[{index}] requires a 'name'.")

        timeout_ms = pick("timeoutMs", "timeout_ms")
        if timeout_ms is not None:
            timeout = _to_number(timeout_ms, f"{name}.timeoutMs") / 1000.0
        else:
            timeout = _to_number(pick("timeout", default=DEFAULT_TIMEOUT_S), f"{name}.timeout")

        return cls(
            name=name,
            url=str(pick("url", default=DEFAULT_URL)).strip(),
            item_selector=str(pick("item_selector", "itemSelector", default=DEFAULT_ITEM_SELECTOR)).strip(),
            title_selector=str(pick("title_selector", "titleSelector", default=DEFAULT_TITLE_SELECTOR)),
            link_selector=str(pick("link_selector", "linkSelector", default=DEFAULT_LINK_SELECTOR)),
            company_selector=str(pick("company_selector", "companySelector", default="")),
            location_selector=str(pick("location_selector", "locationSelector", default="")),
            limit=int(_to_number(pick("limit", default=DEFAULT_LIMIT), f"{name}.limit")),
            timeout=timeout,
            strip_after=_as_str_tuple(pick("strip_after", "stripAfter", default=DEFAULT_STRIP_AFTER), f"{name}.strip_after"),
            title_remove_patterns=_as_str_tuple(
                pick("title_remove_patterns", "titleRemovePatterns", default=()), f"{name}.title_remove_patterns"
            ),
        )


@dataclass(frozen=True)
class RunFlags:
    """
    Per-run switches, as carried by the trigger endpoint's query parameters.
    `include`/`exclude` are stored lowercased.
    """

    include: str = ""
    exclude: str = ""
    max_items: int = DEFAULT_MAX_ITEMS
    debug: bool = False
    dedupe: bool = True
    reset: bool = False
    test: bool = False

    @classmethod
    def from_params(cls, params: Mapping[str, Any] | None) -> RunFlags:
        """
        Parse query-style parameters: include, exclude, max, debug, dedupe,
        reset, test. `dedupe` stays on unless explicitly disabled (dedupe=0).
        """
        p = dict(params or {})
        raw_max = p.get("max", p.get("max_items"))
        if raw_max is None or str(raw_max).strip() == "":
            max_items = DEFAULT_MAX_ITEMS
        else:
            try:
                max_items = int(str(raw_max).strip())
            except ValueError as e:
                raise ConfigError(f"'max' must be an integer (got {raw_max!r}).") from e

        dedupe_raw = p.get("dedupe")
        dedupe = True
        if dedupe_raw is not None and str(dedupe_raw).strip().lower() in {"0", "false", "no", "off", "n", "f"}:
            dedupe = False

        return cls(
            include=str(p.get("include") or "").strip().lower(),
            exclude=str(p.get("exclude") or "").strip().lower(),
            max_items=max_items,
            debug=truthy(p.get("debug")),
            dedupe=dedupe,
            reset=truthy(p.get("reset")),
            test=truthy(p.get("test")),
        )


@dataclass
class Settings:
    """
    Canonical configuration for a job_digest run.

    Sources come from `sources_path` (JSON or YAML list) when given, else the
    built-in boards in `defaults.DEFAULT_SOURCES`.
    """

    sources_path: str | None = None
    seen_path: str = DEFAULT_SEEN_PATH
    seen_bound: int = DEFAULT_SEEN_BOUND
    page_source: str = "http"
    max_workers: int = 1
    skip_failed_sources: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    static_dir: str | None = None  # saved pages for page_source="static"
    _sources: tuple[SourceConfig, ...] = field(default=(), repr=False)

    @property
    def sources(self) -> tuple[SourceConfig, ...]:
        if not self._sources:
            if self.sources_path:
                self._sources = load_sources(self.sources_path)
            else:
                from .defaults import DEFAULT_SOURCES

                self._sources = tuple(DEFAULT_SOURCES)
        return self._sources

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None = None) -> Settings:
        """
        Build Settings from kwargs, falling back to environment variables:

            sources_path         JOB_DIGEST_SOURCES_PATH
            seen_path            JOB_DIGEST_SEEN_PATH      (default data/seen.json)
            seen_bound           JOB_DIGEST_SEEN_BOUND     (default 50)
            page_source          JOB_DIGEST_PAGE_SOURCE    (http | browser | static)
            max_workers          JOB_DIGEST_MAX_WORKERS    (default 1)
            skip_failed_sources  JOB_DIGEST_SKIP_FAILED    (default false)
            user_agent           JOB_DIGEST_USER_AGENT
            static_dir           JOB_DIGEST_STATIC_DIR     (page_source=static only)

        `sources` may also be passed directly as a list of SourceConfig or
        source objects (tests, embedding).
        """
        kw = dict(kwargs or {})

        def opt(key: str, env: str, default: Any = None) -> Any:
            v = kw.get(key)
            if v is None or (isinstance(v, str) and not v.strip()):
                v = getenv_str(env, None)
            return default if v is None else v

        try:
            seen_bound = int(opt("seen_bound", "JOB_DIGEST_SEEN_BOUND", DEFAULT_SEEN_BOUND))
            max_workers = int(opt("max_workers", "JOB_DIGEST_MAX_WORKERS", 1))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid integer setting: {e}") from e

        sources_path = opt("sources_path", "JOB_DIGEST_SOURCES_PATH")
        static_dir = opt("static_dir", "JOB_DIGEST_STATIC_DIR")
        settings = cls(
            sources_path=str(sources_path).strip() if sources_path else None,
            seen_path=str(opt("seen_path", "JOB_DIGEST_SEEN_PATH", DEFAULT_SEEN_PATH)).strip(),
            seen_bound=seen_bound,
            page_source=str(opt("page_source", "JOB_DIGEST_PAGE_SOURCE", "http")).strip().lower(),
            max_workers=max_workers,
            skip_failed_sources=truthy(opt("skip_failed_sources", "JOB_DIGEST_SKIP_FAILED", False)),
            user_agent=str(opt("user_agent", "JOB_DIGEST_USER_AGENT", DEFAULT_USER_AGENT)),
            static_dir=str(static_dir).strip() if static_dir else None,
        )

        inline = kw.get("sources")
        if inline:
            settings._sources = _parse_sources_list(inline)

        _validate_settings(settings)
        return settings


# -----------------------------
# Loading
# -----------------------------
def load_sources(path: str) -> tuple[SourceConfig, ...]:
    """
    Read a JSON or YAML file holding a list of source objects
    (or a mapping with a top-level 'sources' list).
    """
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"sources file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"failed to read sources file {path}: {e}") from e

    lower = path.lower()
    if lower.endswith((".yml", ".yaml")):
        if yaml is None:
            raise ConfigError("YAML sources file requested but PyYAML is not installed.")
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"sources file is invalid YAML: {path}: {e}") from e
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"sources file is invalid JSON: {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("sources")
    sources = _parse_sources_list(data)
    if not sources:
        raise ConfigError(f"No sources found in {path}")
    return sources


# -----------------------------
# Helpers
# -----------------------------
def _parse_sources_list(value: Any) -> tuple[SourceConfig, ...]:
    if not value:
        return ()
    if not isinstance(value, (list, tuple)):
        raise ConfigError("Expected a list of source objects.")
    out: list[SourceConfig] = []
    for i, item in enumerate(value):
        out.append(item if isinstance(item, SourceConfig) else SourceConfig.from_mapping(item, index=i))
    return tuple(out)


def _to_number(value: Any, what: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{what}' must be a number (got {value!r}).") from e


def _as_str_tuple(value: Any, what: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value else ()
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value if str(v) != "")
    raise ConfigError(f"'{what}' must be a string or list of strings.")


def validate_sources(sources: tuple[SourceConfig, ...]) -> None:
    if not sources:
        raise ConfigError("No sources configured.")
    seen_names: set[str] = set()
    for sc in sources:
        if sc.name in seen_names:
            raise ConfigError(f"Duplicate source name {sc.name!r}.")
        seen_names.add(sc.name)
        if not sc.url.strip():
            raise ConfigError(f"Source {sc.name!r}: 'url' cannot be empty.")
        if not sc.item_selector.strip():
            raise ConfigError(f"Source {sc.name!r}: 'item_selector' cannot be empty.")
        selectors = [sc.item_selector, *sc.title_selectors, *sc.link_selectors]
        selectors += [*sc.company_selectors, *sc.location_selectors]
        for selector in selectors:
            try:
                soupsieve.compile(selector)
            except soupsieve.SelectorSyntaxError as e:
                raise ConfigError(f"Source {sc.name!r}: invalid CSS selector {selector!r}: {e}") from e
        if sc.limit <= 0:
            raise ConfigError(f"Source {sc.name!r}: 'limit' must be >= 1.")
        if sc.timeout <= 0:
            raise ConfigError(f"Source {sc.name!r}: 'timeout' must be > 0.")


def _validate_settings(s: Settings) -> None:
    if not s.seen_path:
        raise ConfigError("'seen_path' cannot be empty.")
    if s.seen_bound <= 0:
        raise ConfigError("'seen_bound' must be >= 1.")
    if s.max_workers <= 0:
        raise ConfigError("'max_workers' must be >= 1.")
    if s.page_source not in PAGE_SOURCE_KINDS:
        raise ConfigError(f"'page_source' must be one of {', '.join(PAGE_SOURCE_KINDS)} (got {s.page_source!r}).")
    if s.page_source == "static" and not s.static_dir:
        raise ConfigError("page_source 'static' requires 'static_dir'.")
    validate_sources(s.sources)
