"""Error taxonomy with error codes and recovery hints.

Error Code Convention:
    RS1xx - Path and validation errors
    RS2xx - Process execution errors
    RS3xx - Output parse errors
    RS4xx - Cache errors
    RS5xx - Configuration errors
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Structured error codes for observability and debugging."""

    # Path and validation errors (RS1xx)
    RS100 = "RS100"  # Path does not exist or cannot be listed
    RS101 = "RS101"  # Path has no VCS metadata marker

    # Process errors (RS2xx)
    RS200 = "RS200"  # Git exited non-zero or could not be started
    RS201 = "RS201"  # Git invocation or scan deadline exceeded

    # Parse errors (RS3xx)
    RS300 = "RS300"  # Malformed output from a successful invocation

    # Cache errors (RS4xx)
    RS400 = "RS400"  # Persistent cache read/write failed

    # Configuration errors (RS5xx)
    RS500 = "RS500"  # Invalid configuration value or file


@dataclass
class RepoScanError(Exception):
    """Base exception with structured context.

    Attributes:
        message: Human-readable error description
        code: Structured error code for categorization
        context: Additional context (repository path, git arguments, etc.)
        recoverable: Whether the caller can degrade instead of aborting
        recovery_hint: Suggested fix for the user
    """

    message: str
    code: ErrorCode
    context: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    recovery_hint: str | None = None

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def to_json(self) -> dict[str, Any]:
        """Structured logging format."""
        return {
            "error_code": self.code.value,
            "message": self.message,
            "context": self.context,
            "recoverable": self.recoverable,
            "recovery_hint": self.recovery_hint,
        }


@dataclass
class PathNotAccessible(RepoScanError):
    """The working-copy path does not exist or cannot be listed (RS100)."""

    code: ErrorCode = ErrorCode.RS100
    recoverable: bool = False
    recovery_hint: str | None = "Repository may live on another machine; using cached data"


@dataclass
class NotAVersionControlledDirectory(RepoScanError):
    """The path exists but holds no .git directory or worktree file (RS101)."""

    code: ErrorCode = ErrorCode.RS101
    recoverable: bool = False
    recovery_hint: str | None = "Point reposcan at the root of a git working copy"


@dataclass
class ProcessExecutionFailure(RepoScanError):
    """Git exited non-zero for a sub-query (RS200)."""

    code: ErrorCode = ErrorCode.RS200


@dataclass
class ScanTimeout(ProcessExecutionFailure):
    """A git invocation or a whole repository scan ran past its deadline (RS201)."""

    code: ErrorCode = ErrorCode.RS201


@dataclass
class ParseFailure(RepoScanError):
    """Output from a successful invocation could not be parsed (RS300)."""

    code: ErrorCode = ErrorCode.RS300


@dataclass
class CacheError(RepoScanError):
    """Persistent snapshot cache failure (RS400)."""

    code: ErrorCode = ErrorCode.RS400


@dataclass
class ConfigurationError(RepoScanError):
    """Invalid configuration (RS500)."""

    code: ErrorCode = ErrorCode.RS500
    recoverable: bool = False
