"""Batch scanning with bounded concurrency and per-identity single-flight."""

from .flight import DEBOUNCE_SECONDS, KeyedRateLimiter, SingleFlight
from .runner import (
    BatchReport,
    RefreshPolicy,
    RepoScanResult,
    ScanErrorDetail,
    ScanOutcome,
    ScanScheduler,
    ScanStatus,
    ScanTarget,
    SnapshotView,
    StatePoll,
    as_target,
)

__all__ = [
    "DEBOUNCE_SECONDS",
    "BatchReport",
    "KeyedRateLimiter",
    "RefreshPolicy",
    "RepoScanResult",
    "ScanErrorDetail",
    "ScanOutcome",
    "ScanScheduler",
    "ScanStatus",
    "ScanTarget",
    "SingleFlight",
    "SnapshotView",
    "StatePoll",
    "as_target",
]
