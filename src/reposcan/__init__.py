"""
reposcan - Repository introspection and snapshot caching

Reads git working copies into immutable snapshots (commit history, branches,
remotes, contributors, tags) and cheap working-tree states, caches them by
repository identity, detects meaningful change with canonical hashes and
schedules scans across many repositories with bounded concurrency.
"""

__version__ = "0.1.0"

from .cache import ChangeDetector, SnapshotCache, canonical_hash, has_changed
from .config import ScanConfig, load_config
from .git import (
    GitExecutor,
    HistoryOptions,
    HistoryReader,
    RepositorySnapshot,
    WorkingTreeReader,
    WorkingTreeState,
)
from .scheduler import BatchReport, RefreshPolicy, ScanScheduler, ScanTarget
from .sync import FileChangeBatch, build_file_change_batch

__all__ = [
    "HistoryReader",  # Full history snapshots
    "WorkingTreeReader",  # Cheap polling reads
    "ScanScheduler",  # Batch scans over many repositories
    "SnapshotCache",
    "ChangeDetector",
    "GitExecutor",
    "HistoryOptions",
    "RepositorySnapshot",
    "WorkingTreeState",
    "ScanConfig",
    "ScanTarget",
    "BatchReport",
    "RefreshPolicy",
    "FileChangeBatch",
    "build_file_change_batch",
    "canonical_hash",
    "has_changed",
    "load_config",
]
