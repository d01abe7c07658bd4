"""Cheap read of a working copy's current state for frequent polling."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..exceptions import ParseFailure, ProcessExecutionFailure
from ..logging_config import get_logger
from . import parsers
from .executor import GitExecutor
from .history import validate_working_copy
from .models import DETACHED_HEAD, ChangeKind, FileChange, WorkingTreeState

logger = get_logger(__name__)

SHORT_HEAD_LENGTH = 8


class WorkingTreeReader:
    """Reads branch, HEAD, status, ahead/behind and per-file change stats.

    Only validation and ``git status`` are essential; every other query
    falls back to a default (empty name, zero counts) when it fails.
    """

    def __init__(self, executor: Optional[GitExecutor] = None):
        self.executor = executor or GitExecutor()

    async def read(self, repo_path: str | Path) -> WorkingTreeState:
        path = validate_working_copy(repo_path)

        # Essential: a failure here fails the read
        status_out = await self.executor.run(path, ["status", "--porcelain", "--untracked-files=all"])

        async with asyncio.TaskGroup() as tg:
            branch_task = tg.create_task(self._current_branch(path))
            head_task = tg.create_task(self._head(path))
            local_task = tg.create_task(self._ref_names(path, ["branch", "--format=%(refname:short)"]))
            remote_task = tg.create_task(
                self._ref_names(path, ["branch", "-r", "--format=%(refname:lstrip=2)"])
            )
            ahead_behind_task = tg.create_task(self._ahead_behind(path))

        # Keep leading spaces: they are part of the XY status code
        status_short = status_out.rstrip("\n")
        ahead, behind = ahead_behind_task.result()

        file_changes: list[FileChange] = []
        if status_short:
            file_changes = await self.detect_file_changes(path, status_short)

        return WorkingTreeState(
            repo_path=str(path),
            branch=branch_task.result(),
            head=head_task.result(),
            status_short=status_short,
            ahead=ahead,
            behind=behind,
            local_branches=tuple(local_task.result()),
            remote_branches=tuple(remote_task.result()),
            file_changes=tuple(file_changes),
            last_checked=datetime.now(timezone.utc).isoformat(),
        )

    async def detect_file_changes(self, path: Path, status_short: str) -> list[FileChange]:
        """Classify each status line and attach added/removed line counts.

        Deleted files carry no line counts. For the rest, the diff against
        HEAD is tried first, then the unstaged diff; when both fail the
        counts stay at zero.
        """
        changes: list[FileChange] = []

        for code, file_path in parsers.parse_porcelain(status_short):
            kind = parsers.classify_status(code)
            added = removed = 0
            if kind is not ChangeKind.DELETED:
                added, removed = await self._line_counts(path, file_path)
            changes.append(
                FileChange(
                    file_path=file_path,
                    change_type=kind,
                    lines_added=added,
                    lines_removed=removed,
                )
            )

        return changes

    async def _line_counts(self, path: Path, file_path: str) -> tuple[int, int]:
        for args in (
            ["diff", "--numstat", "HEAD", "--", file_path],
            ["diff", "--numstat", "--", file_path],
        ):
            try:
                out = await self.executor.run(path, args)
                return parsers.parse_numstat(out)
            except (ProcessExecutionFailure, ParseFailure) as e:
                logger.debug("git %s failed for %s: %s", " ".join(args[:3]), file_path, e)
        return 0, 0

    async def _current_branch(self, path: Path) -> str:
        try:
            name = (await self.executor.run(path, ["rev-parse", "--abbrev-ref", "HEAD"])).strip()
        except ProcessExecutionFailure:
            # Unborn branch: HEAD names a branch with no commits yet
            try:
                return (await self.executor.run(path, ["symbolic-ref", "--short", "HEAD"])).strip()
            except ProcessExecutionFailure as e:
                logger.warning("Could not determine current branch in %s: %s", path, e)
                return ""
        return DETACHED_HEAD if name == "HEAD" else name

    async def _head(self, path: Path) -> str:
        try:
            out = await self.executor.run(path, ["rev-parse", "HEAD"])
        except ProcessExecutionFailure:
            # No commits yet
            return ""
        return out.strip()[:SHORT_HEAD_LENGTH]

    async def _ref_names(self, path: Path, args: list[str]) -> list[str]:
        try:
            return parsers.parse_ref_names(await self.executor.run(path, args))
        except ProcessExecutionFailure as e:
            logger.debug("git %s failed in %s: %s", " ".join(args), path, e)
            return []

    async def _ahead_behind(self, path: Path) -> tuple[int, int]:
        try:
            out = await self.executor.run(
                path, ["rev-list", "--left-right", "--count", "HEAD...@{upstream}"]
            )
            return parsers.parse_ahead_behind(out)
        except (ProcessExecutionFailure, ParseFailure):
            # No upstream configured
            return 0, 0
