# modules/job_digest/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import ConfigError, RunFlags, Settings, SourceConfig
from .engine import run_once
from .errors import DigestError, MalformedSeenState, SourceUnavailable
from .extractor import Extractor, clean_title
from .models import RawRecord, RunOutcome
from .seen_store import SeenStore

__all__ = [
    "ConfigError",
    "DigestError",
    "Extractor",
    "MalformedSeenState",
    "RawRecord",
    "RunFlags",
    "RunOutcome",
    "SeenStore",
    "Settings",
    "SourceConfig",
    "SourceUnavailable",
    "clean_title",
    "run_once",
]
