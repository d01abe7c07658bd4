"""Read the full history of a working copy into a RepositorySnapshot."""

from __future__ import annotations

import asyncio
import os
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Optional, TypeVar

from ..exceptions import (
    NotAVersionControlledDirectory,
    ParseFailure,
    PathNotAccessible,
    ProcessExecutionFailure,
)
from ..logging_config import get_logger
from . import parsers
from .executor import GitExecutor
from .models import (
    DETACHED_HEAD,
    Branch,
    Commit,
    Contributor,
    HistoryOptions,
    Remote,
    RepositorySnapshot,
    Tag,
    summarize,
)

logger = get_logger(__name__)

T = TypeVar("T")

# Commits walked per local branch when attributing commits to branches
DEFAULT_BRANCH_WALK_DEPTH = 100

# Stash commits are not history
_REV_SELECTION = ["--exclude=refs/stash", "--all"]


def validate_working_copy(repo_path: str | Path) -> Path:
    """Check that ``repo_path`` is a listable directory holding git metadata.

    ``.git`` may be a directory or, for linked worktrees and submodules, a file.

    Raises:
        PathNotAccessible: the path is missing or cannot be listed
        NotAVersionControlledDirectory: no ``.git`` marker
    """
    path = Path(repo_path).expanduser()
    try:
        if not path.is_dir():
            raise PathNotAccessible(
                f"Repository path is not accessible: {path}", context={"repo_path": str(path)}
            )
        with os.scandir(path):
            pass
        marker = path / ".git"
        has_marker = marker.is_dir() or marker.is_file()
    except OSError as e:
        raise PathNotAccessible(
            f"Repository path is not accessible: {path} ({e.strerror or e})",
            context={"repo_path": str(path)},
        ) from e

    if not has_marker:
        raise NotAVersionControlledDirectory(
            f"Not a git repository: {path}", context={"repo_path": str(path)}
        )
    return path.resolve()


class HistoryReader:
    """Orchestrates the git invocations that make up one snapshot.

    Validation is the only hard failure. The commit log, branch list,
    remotes, contributor roster and tag list are read concurrently; each one
    that fails degrades to its empty default and is recorded in
    ``snapshot.read_errors``.
    """

    def __init__(
        self,
        executor: Optional[GitExecutor] = None,
        branch_walk_depth: int = DEFAULT_BRANCH_WALK_DEPTH,
        stat_concurrency: int = 8,
    ):
        self.executor = executor or GitExecutor()
        self.branch_walk_depth = branch_walk_depth
        self.stat_concurrency = stat_concurrency

    async def read(
        self, repo_path: str | Path, options: Optional[HistoryOptions] = None
    ) -> RepositorySnapshot:
        options = options or HistoryOptions()
        path = validate_working_copy(repo_path)
        logger.debug("Reading history from %s (max_commits=%d)", path, options.max_commits)

        errors: dict[str, str] = {}

        if not await self._has_refs(path):
            # No commits yet: a valid, empty snapshot that still lists remotes
            logger.info("No commits in %s", path)
            remotes: list[Remote] = []
            if options.include_remotes:
                remotes = await self._degrade(errors, "remotes", self._read_remotes(path), [])
            return self._assemble(path, [], [], remotes, [], [], errors)

        async with asyncio.TaskGroup() as tg:
            log_task = tg.create_task(
                self._degrade(errors, "commits", self._read_commits(path, options.max_commits), [])
            )
            branch_task = tg.create_task(
                self._degrade(errors, "branches", self._read_branches(path), [])
                if options.include_branches
                else _empty()
            )
            remote_task = tg.create_task(
                self._degrade(errors, "remotes", self._read_remotes(path), [])
                if options.include_remotes
                else _empty()
            )
            contributor_task = tg.create_task(
                self._degrade(errors, "contributors", self._read_contributors(path), None)
            )
            tag_task = tg.create_task(self._degrade(errors, "tags", self._read_tags(path), []))

        commits: list[Commit] = log_task.result()
        branches: list[Branch] = branch_task.result()
        contributors: Optional[list[Contributor]] = contributor_task.result()

        if contributors is None:
            # Roster query failed: fall back to the commits already read
            contributors = parsers.contributors_from_commits(commits)

        if options.include_stats and commits:
            commits = await self._attach_stats(path, commits)

        if branches and commits:
            commits = await self._attach_branches(path, commits, branches, errors)

        snapshot = self._assemble(
            path,
            commits,
            branches,
            remote_task.result(),
            contributors,
            tag_task.result(),
            errors,
            branches_read=options.include_branches and "branches" not in errors,
        )
        logger.info(
            "Read %d commits, %d branches, %d contributors from %s",
            len(snapshot.commits),
            len(snapshot.branches),
            len(snapshot.contributors),
            path,
        )
        return snapshot

    # ── sub-reads ─────────────────────────────────────────────────

    async def _has_refs(self, path: Path) -> bool:
        try:
            out = await self.executor.run(
                path, ["for-each-ref", "--count=1", "--format=%(refname)"]
            )
        except ProcessExecutionFailure as e:
            # Let the individual sub-reads report their own failures
            logger.debug("for-each-ref failed in %s: %s", path, e)
            return True
        if out.strip():
            return True
        # Detached HEAD with no refs at all still has history
        try:
            head = await self.executor.execute(path, ["rev-parse", "--verify", "-q", "HEAD"])
        except ProcessExecutionFailure as e:
            logger.debug("rev-parse HEAD failed in %s: %s", path, e)
            return False
        return head.returncode == 0 and bool(head.stdout.strip())

    async def _read_commits(self, path: Path, max_commits: int) -> list[Commit]:
        out = await self.executor.run(
            path,
            [
                "log",
                f"--max-count={max_commits}",
                *_REV_SELECTION,
                "--date-order",
                f"--pretty=format:{parsers.LOG_FORMAT}",
            ],
        )
        return parsers.parse_log(out)

    async def _read_branches(self, path: Path) -> list[Branch]:
        out = await self.executor.run(
            path, ["branch", "-a", f"--format={parsers.BRANCH_FORMAT}"]
        )
        return parsers.parse_branches(out)

    async def _read_remotes(self, path: Path) -> list[Remote]:
        out = await self.executor.run(path, ["remote", "-v"])
        return parsers.parse_remotes(out)

    async def _read_contributors(self, path: Path) -> list[Contributor]:
        out = await self.executor.run(path, ["shortlog", "-sne", *_REV_SELECTION])
        return parsers.parse_shortlog(out)

    async def _read_tags(self, path: Path) -> list[Tag]:
        out = await self.executor.run(path, ["tag", "-l", f"--format={parsers.TAG_FORMAT}"])
        return parsers.parse_tags(out)

    async def _attach_stats(self, path: Path, commits: list[Commit]) -> list[Commit]:
        """Fetch per-commit diff stats; a failed lookup leaves zero stats."""
        semaphore = asyncio.Semaphore(self.stat_concurrency)

        async def with_stats(commit: Commit) -> Commit:
            async with semaphore:
                try:
                    out = await self.executor.run(
                        path, ["show", "--shortstat", "--format=", commit.sha]
                    )
                    stats = parsers.parse_shortstat(out)
                except (ProcessExecutionFailure, ParseFailure) as e:
                    logger.debug("No stats for %s: %s", commit.sha[:8], e)
                    return commit
            return replace(commit, stats=stats)

        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(with_stats(c)) for c in commits]
        return [t.result() for t in tasks]

    async def _attach_branches(
        self,
        path: Path,
        commits: list[Commit],
        branches: list[Branch],
        errors: dict[str, str],
    ) -> list[Commit]:
        """Record which local branches reach each commit within the walk depth.

        Remote-tracking branches are never walked, so commits that exist only
        on a remote carry no branch names.
        """
        membership: dict[str, set[str]] = {}

        # Sequential: one walk per local branch
        for branch in branches:
            if branch.is_remote:
                continue
            try:
                out = await self.executor.run(
                    path,
                    [
                        "rev-list",
                        f"--max-count={self.branch_walk_depth}",
                        f"refs/heads/{branch.name}",
                        "--",
                    ],
                )
                hashes = parsers.parse_hash_list(out)
            except (ProcessExecutionFailure, ParseFailure) as e:
                logger.warning("Could not walk branch %s in %s: %s", branch.name, path, e)
                errors[f"branch:{branch.name}"] = e.message
                continue
            for sha in hashes:
                membership.setdefault(sha, set()).add(branch.name)

        return [
            replace(c, branches=tuple(sorted(membership[c.sha]))) if c.sha in membership else c
            for c in commits
        ]

    async def _degrade(
        self, errors: dict[str, str], field_name: str, read: Awaitable[T], default: T
    ) -> T:
        try:
            return await read
        except (ProcessExecutionFailure, ParseFailure) as e:
            logger.warning("Reading %s failed, using empty default: %s", field_name, e)
            errors[field_name] = e.message
            return default

    def _assemble(
        self,
        path: Path,
        commits: list[Commit],
        branches: list[Branch],
        remotes: list[Remote],
        contributors: list[Contributor],
        tags: list[Tag],
        errors: dict[str, str],
        branches_read: bool = True,
    ) -> RepositorySnapshot:
        commit_t = tuple(commits)
        branch_t = tuple(branches)
        remote_t = tuple(remotes)
        contributor_t = tuple(contributors)
        tag_t = tuple(tags)

        current = next((b.name for b in branch_t if b.is_head and b.is_local), None)
        if current is None and commit_t and branches_read:
            current = DETACHED_HEAD

        return RepositorySnapshot(
            repo_path=str(path),
            read_at=datetime.now(timezone.utc).isoformat(),
            commits=commit_t,
            branches=branch_t,
            remotes=remote_t,
            contributors=contributor_t,
            tags=tag_t,
            summary=summarize(commit_t, branch_t, contributor_t, tag_t, remote_t),
            current_branch=current,
            read_errors=tuple(sorted(errors.items())),
        )


async def _empty() -> list:
    return []
