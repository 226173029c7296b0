from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from . import logging_bridge
from .config import DEFAULT_SEEN_BOUND
from .errors import MalformedSeenState
from .models import RawRecord

log = logging.getLogger(__name__)

# One lock per state file path, shared by every SeenStore in this process.
# Separate processes are NOT coordinated; see DESIGN.md (concurrency).
_LOCKS: dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: str) -> threading.Lock:
    key = os.path.abspath(path)
    with _LOCKS_GUARD:
        return _LOCKS.setdefault(key, threading.Lock())


@dataclass
class SeenState:
    """Link identifiers, most recent first. Persisted as {"urls": [...]}."""

    urls: list[str] = field(default_factory=list)

    def to_json(self) -> dict[str, list[str]]:
        return {"urls": list(self.urls)}


# ---- Public API -------------------------------------------------------------


class SeenStore:
    """
    Persistent, bounded set of links already delivered.

    Every operation is one scoped transaction: acquire the lock, load the
    document, mutate it in memory, persist it atomically, release.
    An unreadable, missing or malformed document reads as empty.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = _lock_for(path)

    @contextlib.contextmanager
    def transaction(self) -> Iterator[SeenState]:
        """
        Yield the current state for mutation; persist it if the block exits
        cleanly. An exception inside the block leaves the file untouched.
        """
        with self._lock:
            state = self._load()
            yield state
            self._write(state)

    def filter_new(self, records: Iterable[RawRecord], bound: int = DEFAULT_SEEN_BOUND) -> list[RawRecord]:
        """
        Return the records whose link is non-empty and not yet seen, in input
        order, and fold their links into the stored state:

            new state = fresh links (output order) + previous links, cut to `bound`

        A link repeated within `records` is returned once.
        """
        if bound <= 0:
            raise ValueError("bound must be >= 1")

        fresh: list[RawRecord] = []
        with self.transaction() as state:
            seen = set(state.urls)
            for record in records:
                if not record.link or record.link in seen:
                    continue
                seen.add(record.link)
                fresh.append(record)
            state.urls = _unique([r.link for r in fresh] + state.urls)[:bound]
            stored = len(state.urls)

        logging_bridge.activity({
            "component": "job_digest.seen_store",
            "op": "filter_new",
            "path": self.path,
            "fresh": len(fresh),
            "stored": stored,
            "bound": bound,
        })
        return fresh

    def reset(self) -> None:
        """Replace the stored state with an empty identifier list."""
        with self.transaction() as state:
            state.urls = []
        logging_bridge.activity({"component": "job_digest.seen_store", "op": "reset", "path": self.path})

    def identifiers(self) -> list[str]:
        """Snapshot of the stored links (most recent first)."""
        with self._lock:
            return list(self._load().urls)

    # ---- Internal utilities -------------------------------------------------

    def _load(self) -> SeenState:
        try:
            return SeenState(urls=_read_state(self.path))
        except FileNotFoundError:
            return SeenState()
        except MalformedSeenState as e:
            log.warning("Ignoring unreadable seen state at %s: %s", self.path, e)
            return SeenState()

    def _write(self, state: SeenState) -> None:
        d = os.path.dirname(os.path.abspath(self.path)) or "."
        os.makedirs(d, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".seen-", suffix=".json", dir=d)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state.to_json(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.remove(tmp_path)
            raise


def _read_state(path: str) -> list[str]:
    """
    Read the identifier list. Raises FileNotFoundError if absent and
    MalformedSeenState for anything else that is not {"urls": [str, ...]}.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedSeenState(f"{path}: {e}") from e

    urls = data.get("urls") if isinstance(data, dict) else None
    if not isinstance(urls, list):
        raise MalformedSeenState(f"{path}: expected an object with a 'urls' list")
    return _unique(u for u in urls if isinstance(u, str) and u)


def _unique(values: Iterable[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out
