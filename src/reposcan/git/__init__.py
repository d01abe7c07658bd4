"""Git introspection: process execution, output parsers and readers."""

from .executor import GitExecutor, ProcessResult
from .history import HistoryReader, validate_working_copy
from .models import (
    DETACHED_HEAD,
    Author,
    Branch,
    ChangeKind,
    Commit,
    CommitStats,
    Contributor,
    FileChange,
    HistoryOptions,
    Remote,
    RepositorySnapshot,
    Summary,
    Tag,
    WorkingTreeState,
)
from .worktree import WorkingTreeReader

__all__ = [
    "DETACHED_HEAD",
    "Author",
    "Branch",
    "ChangeKind",
    "Commit",
    "CommitStats",
    "Contributor",
    "FileChange",
    "GitExecutor",
    "HistoryOptions",
    "HistoryReader",
    "ProcessResult",
    "Remote",
    "RepositorySnapshot",
    "Summary",
    "Tag",
    "WorkingTreeReader",
    "WorkingTreeState",
    "validate_working_copy",
]
