"""Data models for repository snapshots and working-tree state.

Every record is a frozen dataclass built from tuples and plain values, so a
snapshot never changes after construction: a rescan builds a new one.
``to_dict`` produces the JSON shape consumed by the caching and
visualisation collaborators; ``from_dict`` accepts that shape back, which is
how a snapshot persisted elsewhere is reused as an offline fallback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

# Branch name reported when HEAD points at a commit rather than a branch
DETACHED_HEAD = "DETACHED"


@dataclass(frozen=True)
class HistoryOptions:
    """Options record for a full history read."""

    max_commits: int = 1000
    include_branches: bool = True
    include_remotes: bool = True
    include_stats: bool = True


@dataclass(frozen=True)
class Author:
    name: str
    email: str


@dataclass(frozen=True)
class CommitStats:
    additions: int = 0
    deletions: int = 0
    files: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"additions": self.additions, "deletions": self.deletions, "files": self.files}


@dataclass(frozen=True)
class Commit:
    sha: str
    author: Author
    date: str  # ISO-8601 author date
    message: str  # subject line
    parents: tuple[str, ...] = ()  # empty for root commits, 2+ for merges
    branches: tuple[str, ...] = ()  # local branches whose recent walk reached this commit
    stats: CommitStats = field(default_factory=CommitStats)

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "sha": self.sha,
            "author": {"name": self.author.name, "email": self.author.email},
            "date": self.date,
            "message": self.message,
            "parents": list(self.parents),
            "branches": list(self.branches),
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Commit:
        author = data.get("author") or {}
        stats = data.get("stats") or {}
        return cls(
            sha=data["sha"],
            author=Author(name=author.get("name", ""), email=author.get("email", "")),
            date=data.get("date", ""),
            message=data.get("message", ""),
            parents=tuple(data.get("parents") or ()),
            branches=tuple(data.get("branches") or ()),
            stats=CommitStats(
                additions=int(stats.get("additions", 0) or 0),
                deletions=int(stats.get("deletions", 0) or 0),
                files=int(stats.get("files", 0) or 0),
            ),
        )


@dataclass(frozen=True)
class Branch:
    name: str
    commit: str  # tip commit hash
    upstream: Optional[str] = None
    is_head: bool = False
    is_remote: bool = False

    @property
    def is_local(self) -> bool:
        return not self.is_remote

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "commit": self.commit,
            "upstream": self.upstream,
            "isHead": self.is_head,
            "isRemote": self.is_remote,
            "isLocal": self.is_local,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Branch:
        return cls(
            name=data["name"],
            commit=data.get("commit", ""),
            upstream=data.get("upstream"),
            is_head=bool(data.get("isHead", False)),
            is_remote=bool(data.get("isRemote", False)),
        )


@dataclass(frozen=True)
class Remote:
    name: str
    fetch: Optional[str] = None
    push: Optional[str] = None


@dataclass(frozen=True)
class Contributor:
    name: str
    email: str
    commits: int

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "email": self.email, "commits": self.commits}


@dataclass(frozen=True)
class Tag:
    name: str
    commit: str  # peeled target commit for annotated tags
    date: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "commit": self.commit, "date": self.date}


@dataclass(frozen=True)
class Summary:
    total_commits: int = 0
    total_branches: int = 0
    total_contributors: int = 0
    total_tags: int = 0
    total_remotes: int = 0
    first_commit_date: Optional[str] = None
    last_commit_date: Optional[str] = None
    total_additions: int = 0
    total_deletions: int = 0
    total_files: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCommits": self.total_commits,
            "totalBranches": self.total_branches,
            "totalContributors": self.total_contributors,
            "totalTags": self.total_tags,
            "totalRemotes": self.total_remotes,
            "firstCommitDate": self.first_commit_date,
            "lastCommitDate": self.last_commit_date,
            "totalAdditions": self.total_additions,
            "totalDeletions": self.total_deletions,
            "totalFiles": self.total_files,
        }


def summarize(
    commits: tuple[Commit, ...],
    branches: tuple[Branch, ...],
    contributors: tuple[Contributor, ...],
    tags: tuple[Tag, ...],
    remotes: tuple[Remote, ...],
) -> Summary:
    """Compute summary statistics from already-read data."""
    return Summary(
        total_commits=len(commits),
        total_branches=len(branches),
        total_contributors=len(contributors),
        total_tags=len(tags),
        total_remotes=len(remotes),
        # Commits are newest first
        first_commit_date=commits[-1].date if commits else None,
        last_commit_date=commits[0].date if commits else None,
        total_additions=sum(c.stats.additions for c in commits),
        total_deletions=sum(c.stats.deletions for c in commits),
        total_files=sum(c.stats.files for c in commits),
    )


@dataclass(frozen=True)
class RepositorySnapshot:
    """Complete, immutable record of one history read of a working copy."""

    repo_path: str
    read_at: str  # ISO-8601, volatile
    commits: tuple[Commit, ...] = ()
    branches: tuple[Branch, ...] = ()
    remotes: tuple[Remote, ...] = ()
    contributors: tuple[Contributor, ...] = ()
    tags: tuple[Tag, ...] = ()
    summary: Summary = field(default_factory=Summary)
    current_branch: Optional[str] = None
    # Sub-reads that degraded to their empty default: field name -> reason
    read_errors: tuple[tuple[str, str], ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.commits

    @property
    def head_commit(self) -> Optional[Commit]:
        return self.commits[0] if self.commits else None

    def commit(self, sha: str) -> Optional[Commit]:
        for c in self.commits:
            if c.sha == sha:
                return c
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "repoPath": self.repo_path,
            "readAt": self.read_at,
            "currentBranch": self.current_branch,
            "commits": [c.to_dict() for c in self.commits],
            "branches": [b.to_dict() for b in self.branches],
            "remotes": {r.name: {"fetch": r.fetch, "push": r.push} for r in self.remotes},
            "contributors": [c.to_dict() for c in self.contributors],
            "tags": [t.to_dict() for t in self.tags],
            "summary": self.summary.to_dict(),
            "readErrors": dict(self.read_errors),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepositorySnapshot:
        commits = tuple(Commit.from_dict(c) for c in data.get("commits") or ())
        branches = tuple(Branch.from_dict(b) for b in data.get("branches") or ())
        remotes = tuple(
            Remote(name=name, fetch=urls.get("fetch"), push=urls.get("push"))
            for name, urls in (data.get("remotes") or {}).items()
        )
        contributors = tuple(
            Contributor(name=c.get("name", ""), email=c.get("email", ""), commits=int(c.get("commits", 0)))
            for c in data.get("contributors") or ()
        )
        tags = tuple(
            Tag(name=t["name"], commit=t.get("commit", ""), date=t.get("date", ""))
            for t in data.get("tags") or ()
        )
        return cls(
            repo_path=data.get("repoPath", ""),
            read_at=data.get("readAt", ""),
            commits=commits,
            branches=branches,
            remotes=remotes,
            contributors=contributors,
            tags=tags,
            # Recomputed rather than trusted, so stored and live snapshots agree
            summary=summarize(commits, branches, contributors, tags, remotes),
            current_branch=data.get("currentBranch"),
            read_errors=tuple(sorted((data.get("readErrors") or {}).items())),
        )


class ChangeKind(str, Enum):
    MODIFIED = "MODIFIED"
    ADDED = "ADDED"
    DELETED = "DELETED"
    RENAMED = "RENAMED"


@dataclass(frozen=True)
class FileChange:
    file_path: str
    change_type: ChangeKind
    lines_added: int = 0
    lines_removed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "filePath": self.file_path,
            "changeType": self.change_type.value,
            "linesAdded": self.lines_added,
            "linesRemoved": self.lines_removed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileChange:
        return cls(
            file_path=data["filePath"],
            change_type=ChangeKind(data.get("changeType", ChangeKind.MODIFIED.value)),
            lines_added=int(data.get("linesAdded", 0)),
            lines_removed=int(data.get("linesRemoved", 0)),
        )


@dataclass(frozen=True)
class WorkingTreeState:
    """Cheap, current view of a working copy used for frequent polling."""

    repo_path: str
    branch: str
    head: str  # short hash, empty before the first commit
    status_short: str
    ahead: int = 0
    behind: int = 0
    local_branches: tuple[str, ...] = ()
    remote_branches: tuple[str, ...] = ()
    file_changes: tuple[FileChange, ...] = ()
    last_checked: str = ""  # ISO-8601, volatile

    @property
    def dirty(self) -> bool:
        return bool(self.status_short)

    @property
    def status_lines(self) -> list[str]:
        return [line for line in self.status_short.split("\n") if line.strip()]

    def to_dict(self) -> dict[str, Any]:
        return {
            "repoPath": self.repo_path,
            "branch": self.branch,
            "head": self.head,
            "statusShort": self.status_short,
            "ahead": self.ahead,
            "behind": self.behind,
            "dirty": self.dirty,
            "localBranches": list(self.local_branches),
            "remoteBranches": list(self.remote_branches),
            "fileChanges": [fc.to_dict() for fc in self.file_changes],
            "lastChecked": self.last_checked,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkingTreeState:
        return cls(
            repo_path=data.get("repoPath", ""),
            branch=data.get("branch", ""),
            head=data.get("head", ""),
            status_short=data.get("statusShort", ""),
            ahead=int(data.get("ahead", 0)),
            behind=int(data.get("behind", 0)),
            local_branches=tuple(data.get("localBranches") or ()),
            remote_branches=tuple(data.get("remoteBranches") or ()),
            file_changes=tuple(FileChange.from_dict(fc) for fc in data.get("fileChanges") or ()),
            last_checked=data.get("lastChecked", ""),
        )
