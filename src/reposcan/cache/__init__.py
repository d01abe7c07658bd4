"""Snapshot caching and canonical change detection."""

from .fingerprint import VOLATILE_FIELDS, ChangeDetector, canonical_hash, has_changed
from .store import CacheEntry, CacheHealth, CacheUpdate, SnapshotCache

__all__ = [
    "VOLATILE_FIELDS",
    "CacheEntry",
    "CacheHealth",
    "CacheUpdate",
    "ChangeDetector",
    "SnapshotCache",
    "canonical_hash",
    "has_changed",
]
