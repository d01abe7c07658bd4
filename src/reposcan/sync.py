"""File-change batches for the live-activity notification collaborator.

The engine never sends anything itself. It turns the ``FileChange`` records
of a working-tree poll into a batch tagged with session, user and project
identifiers, in the row shape the collaborator upserts on
``(session_id, file_path)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Iterable, Optional

from .git.models import FileChange


def file_type_of(file_path: str) -> str:
    """Extension without the dot, or ``""`` for extensionless files."""
    return PurePosixPath(file_path).suffix.lstrip(".")


@dataclass(frozen=True)
class FileChangeRecord:
    session_id: str
    user_id: str
    project_id: str
    change: FileChange
    observed_at: str  # ISO-8601

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "file_path": self.change.file_path,
            "file_type": file_type_of(self.change.file_path),
            "change_type": self.change.change_type.value,
            "lines_added": self.change.lines_added,
            "lines_removed": self.change.lines_removed,
            "first_change_at": self.observed_at,
            "last_change_at": self.observed_at,
        }


@dataclass(frozen=True)
class FileChangeBatch:
    session_id: str
    user_id: str
    project_id: str
    records: tuple[FileChangeRecord, ...]

    def __len__(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return not self.records

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "userId": self.user_id,
            "projectId": self.project_id,
            "fileChanges": [r.to_dict() for r in self.records],
        }


def build_file_change_batch(
    changes: Iterable[FileChange],
    session_id: str,
    user_id: str,
    project_id: str,
    observed_at: Optional[str] = None,
) -> FileChangeBatch:
    """Tag ``changes`` for delivery, one record per file path.

    A path listed twice keeps its last entry, matching the collaborator's
    upsert key. Record order follows first appearance.
    """
    if not session_id or not user_id or not project_id:
        raise ValueError("session_id, user_id and project_id are required")

    stamp = observed_at or datetime.now(timezone.utc).isoformat()
    by_path: dict[str, FileChange] = {}
    for change in changes:
        by_path[change.file_path] = change

    records = tuple(
        FileChangeRecord(
            session_id=session_id,
            user_id=user_id,
            project_id=project_id,
            change=change,
            observed_at=stamp,
        )
        for change in by_path.values()
    )
    return FileChangeBatch(
        session_id=session_id, user_id=user_id, project_id=project_id, records=records
    )
