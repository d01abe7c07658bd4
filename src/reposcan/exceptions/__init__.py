"""Exception hierarchy for reposcan."""

from .taxonomy import (
    CacheError,
    ConfigurationError,
    ErrorCode,
    NotAVersionControlledDirectory,
    ParseFailure,
    PathNotAccessible,
    ProcessExecutionFailure,
    RepoScanError,
    ScanTimeout,
)

__all__ = [
    "ErrorCode",
    "RepoScanError",
    "PathNotAccessible",
    "NotAVersionControlledDirectory",
    "ProcessExecutionFailure",
    "ScanTimeout",
    "ParseFailure",
    "CacheError",
    "ConfigurationError",
]
