"""
Snapshot cache keyed by repository identity.

Holds the most recent RepositorySnapshot (or WorkingTreeState) per
repository with its canonical content hash and last-updated time. Entries are
replaced wholesale on every successful scan and never mutated.

The in-memory map is authoritative and LRU-bounded. When a cache directory
is configured, entries are also written through to diskcache so they survive
restarts; disk failures only cost persistence and are logged.
"""

from __future__ import annotations

import sqlite3
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

from diskcache import Cache

from ..exceptions import CacheError
from ..git.models import RepositorySnapshot, WorkingTreeState
from ..logging_config import get_logger
from .fingerprint import ChangeDetector

logger = get_logger(__name__)

CachedValue = Union[RepositorySnapshot, WorkingTreeState]

_KIND_SNAPSHOT = "snapshot"
_KIND_STATE = "state"


@dataclass(frozen=True)
class CacheEntry:
    identity: str
    value: CachedValue
    content_hash: str
    last_updated: float  # unix seconds

    def age(self, now: float) -> float:
        return max(0.0, now - self.last_updated)

    def to_record(self) -> dict[str, Any]:
        """Summary row for an external store (cache blob plus headline fields)."""
        record: dict[str, Any] = {
            "cache": self.value.to_dict(),
            "last_updated": self.last_updated,
            "content_hash": self.content_hash,
        }
        if isinstance(self.value, RepositorySnapshot):
            head = self.value.head_commit
            record.update(
                commit_count=self.value.summary.total_commits,
                branch_count=self.value.summary.total_branches,
                last_commit_sha=head.sha if head else None,
                last_commit_date=head.date if head else None,
            )
        return record


@dataclass(frozen=True)
class CacheUpdate:
    """Result of a put: the new entry, the one it replaced, and whether content moved."""

    entry: CacheEntry
    previous: Optional[CacheEntry]
    changed: bool


@dataclass(frozen=True)
class CacheHealth:
    total: int
    fresh: int
    stale: int
    average_age_seconds: float
    oldest_update: Optional[float]
    newest_update: Optional[float]


Listener = Callable[[CacheUpdate], None]


class SnapshotCache:
    """
    Identity-keyed cache of snapshots with freshness and change detection.

    Features:
    - Canonical-hash change detection on every put
    - Caller-supplied freshness thresholds (no TTL policy of its own)
    - LRU bound plus explicit age sweep
    - Change listeners per identity
    - Optional write-through persistence via diskcache
    """

    def __init__(
        self,
        max_entries: int = 256,
        detector: Optional[ChangeDetector] = None,
        cache_dir: Optional[str | Path] = None,
        clock: Callable[[], float] = time.time,
        name: str = "history",
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.detector = detector if detector is not None else ChangeDetector()
        self.name = name
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._listeners: dict[str, list[Listener]] = {}
        self._lock = threading.RLock()

        self._disk: Optional[Cache] = None
        if cache_dir is not None:
            directory = Path(cache_dir).expanduser()
            try:
                self._disk = Cache(str(directory))
            except (OSError, sqlite3.Error) as e:
                raise CacheError(
                    f"Could not open cache directory {directory}: {e}",
                    context={"cache_dir": str(directory)},
                ) from e
            logger.debug(f"Cache '{name}' persisted at {directory}")

    # ── lookups ──────────────────────────────────────────────────

    def get(self, identity: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(identity)
            if entry is not None:
                self._entries.move_to_end(identity)
                logger.debug(f"Cache hit: {self.name}:{identity}")
                return entry

        entry = self._load(identity)
        if entry is None:
            logger.debug(f"Cache miss: {self.name}:{identity}")
            return None

        with self._lock:
            # A concurrent put wins over the disk copy
            current = self._entries.get(identity)
            if current is not None:
                return current
            self._insert(entry)
        return entry

    def is_fresh(self, identity: str, max_age: float) -> bool:
        """True iff an entry exists and is no older than ``max_age`` seconds."""
        entry = self.get(identity)
        if entry is None:
            return False
        return entry.age(self._clock()) <= max_age

    def age(self, identity: str) -> Optional[float]:
        entry = self.get(identity)
        return None if entry is None else entry.age(self._clock())

    def warm(self) -> int:
        """Load persisted entries into memory (up to the LRU bound); returns the count."""
        if self._disk is None:
            return 0
        prefix = f"{self.name}:"
        try:
            keys = [k for k in self._disk.iterkeys() if isinstance(k, str) and k.startswith(prefix)]
        except (OSError, sqlite3.Error) as e:
            logger.warning(f"Cache scan failed: {e}")
            return 0
        return sum(1 for key in keys if self.get(key[len(prefix):]) is not None)

    def identities(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ── writes ───────────────────────────────────────────────────

    def put(self, identity: str, value: CachedValue) -> CacheUpdate:
        """Replace the entry for ``identity`` and report whether content changed.

        Listeners for the identity are called only when the canonical hash moved.
        """
        content_hash = self.detector.canonical_hash(value)
        entry = CacheEntry(
            identity=identity,
            value=value,
            content_hash=content_hash,
            last_updated=self._clock(),
        )

        previous = self.get(identity)
        changed = previous is None or previous.content_hash != content_hash

        with self._lock:
            self._insert(entry)
        self._store(entry)

        update = CacheUpdate(entry=entry, previous=previous, changed=changed)
        if changed:
            logger.debug(f"Content changed: {self.name}:{identity} -> {content_hash[:12]}")
            self._notify(identity, update)
        return update

    def seed(
        self,
        identity: str,
        value: CachedValue | dict[str, Any],
        last_updated: Optional[float] = None,
    ) -> CacheEntry:
        """Load a snapshot stored elsewhere, keeping its original update time.

        Used to hand the cache a previously persisted snapshot so it can serve
        as offline data when the working copy is unreachable. Does not notify
        listeners.
        """
        if isinstance(value, dict):
            value = self._from_dict(value)
        entry = CacheEntry(
            identity=identity,
            value=value,
            content_hash=self.detector.canonical_hash(value),
            last_updated=self._clock() if last_updated is None else last_updated,
        )
        with self._lock:
            self._insert(entry)
        self._store(entry)
        return entry

    def evict(self, identity: str) -> bool:
        with self._lock:
            removed = self._entries.pop(identity, None) is not None
        if self._disk is not None:
            try:
                removed = bool(self._disk.delete(self._key(identity))) or removed
            except (OSError, sqlite3.Error) as e:
                logger.warning(f"Cache delete failed: {e}")
        return removed

    def sweep(self, max_age: float) -> int:
        """Drop every entry older than ``max_age`` seconds, in memory and on disk.

        Returns the number of distinct identities removed.
        """
        now = self._clock()
        with self._lock:
            expired = {k for k, e in self._entries.items() if e.age(now) > max_age}
            for identity in expired:
                del self._entries[identity]
        if self._disk is not None:
            expired |= self._sweep_disk(now, max_age, expired)
        if expired:
            logger.debug(f"Swept {len(expired)} stale entries from '{self.name}'")
        return len(expired)

    def _sweep_disk(self, now: float, max_age: float, known: set[str]) -> set[str]:
        prefix = f"{self.name}:"
        removed: set[str] = set()
        try:
            keys = [k for k in self._disk.iterkeys() if isinstance(k, str) and k.startswith(prefix)]
            for key in keys:
                identity = key[len(prefix):]
                if identity in known:
                    self._disk.delete(key)
                    continue
                raw = self._disk.get(key)
                stamp = raw.get("last_updated") if isinstance(raw, dict) else None
                if not isinstance(stamp, (int, float)) or now - stamp > max_age:
                    self._disk.delete(key)
                    removed.add(identity)
        except (OSError, sqlite3.Error) as e:
            logger.warning(f"Cache sweep failed: {e}")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        if self._disk is not None:
            try:
                self._disk.clear()
            except (OSError, sqlite3.Error) as e:
                logger.warning(f"Cache clear failed: {e}")
        logger.info(f"Cache '{self.name}' cleared")

    # ── listeners ────────────────────────────────────────────────

    def subscribe(self, identity: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for content changes; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.setdefault(identity, []).append(listener)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(identity, [])
                if listener in listeners:
                    listeners.remove(listener)
                if not listeners:
                    self._listeners.pop(identity, None)

        return unsubscribe

    def _notify(self, identity: str, update: CacheUpdate) -> None:
        with self._lock:
            listeners = list(self._listeners.get(identity, ()))
        for listener in listeners:
            try:
                listener(update)
            except Exception:
                logger.exception(f"Change listener for {identity} failed")

    # ── reporting ────────────────────────────────────────────────

    def health(self, max_age: float) -> CacheHealth:
        now = self._clock()
        with self._lock:
            entries = list(self._entries.values())

        if not entries:
            return CacheHealth(0, 0, 0, 0.0, None, None)

        ages = [e.age(now) for e in entries]
        fresh = sum(1 for a in ages if a <= max_age)
        updates = [e.last_updated for e in entries]
        return CacheHealth(
            total=len(entries),
            fresh=fresh,
            stale=len(entries) - fresh,
            average_age_seconds=sum(ages) / len(ages),
            oldest_update=min(updates),
            newest_update=max(updates),
        )

    def stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "name": self.name,
            "entries": len(self),
            "max_entries": self.max_entries,
            "persistent": self._disk is not None,
        }
        if self._disk is not None:
            try:
                stats["directory"] = self._disk.directory
                stats["disk_entries"] = len(self._disk)
                stats["volume"] = self._disk.volume()
            except (OSError, sqlite3.Error) as e:
                logger.warning(f"Cache stats failed: {e}")
                stats["error"] = str(e)
        return stats

    def close(self) -> None:
        if self._disk is not None:
            self._disk.close()
            self._disk = None

    def __enter__(self) -> SnapshotCache:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ── internals ────────────────────────────────────────────────

    def _insert(self, entry: CacheEntry) -> None:
        # Caller holds the lock
        self._entries[entry.identity] = entry
        self._entries.move_to_end(entry.identity)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted LRU entry {self.name}:{evicted}")

    def _key(self, identity: str) -> str:
        return f"{self.name}:{identity}"

    def _store(self, entry: CacheEntry) -> None:
        if self._disk is None:
            return
        kind = _KIND_SNAPSHOT if isinstance(entry.value, RepositorySnapshot) else _KIND_STATE
        try:
            self._disk.set(
                self._key(entry.identity),
                {
                    "kind": kind,
                    "data": entry.value.to_dict(),
                    "content_hash": entry.content_hash,
                    "last_updated": entry.last_updated,
                },
            )
        except (OSError, sqlite3.Error) as e:
            logger.warning(f"Cache set failed: {e}")

    def _load(self, identity: str) -> Optional[CacheEntry]:
        if self._disk is None:
            return None
        try:
            raw = self._disk.get(self._key(identity))
        except (OSError, sqlite3.Error) as e:
            logger.warning(f"Cache get failed: {e}")
            return None
        if not isinstance(raw, dict):
            return None

        data = raw.get("data") or {}
        value: CachedValue = (
            WorkingTreeState.from_dict(data)
            if raw.get("kind") == _KIND_STATE
            else RepositorySnapshot.from_dict(data)
        )
        return CacheEntry(
            identity=identity,
            value=value,
            content_hash=raw.get("content_hash") or self.detector.canonical_hash(value),
            last_updated=float(raw.get("last_updated", 0.0)),
        )

    @staticmethod
    def _from_dict(data: dict[str, Any]) -> CachedValue:
        if "statusShort" in data:
            return WorkingTreeState.from_dict(data)
        return RepositorySnapshot.from_dict(data)
