"""Parsers for git CLI output, one per sub-query.

Each parser is a pure function over the captured stdout of a single
invocation, so it can be tested against recorded output. Parsers raise
``ParseFailure`` when the output is malformed; callers treat that like a
failed invocation for the affected field only.

Field-delimited formats use the ASCII unit separator (0x1f) between fields
and the record separator (0x1e) between records, so subjects and names
containing ``|`` or tabs survive intact.
"""

from __future__ import annotations

import re

from ..exceptions import ParseFailure
from ..logging_config import get_logger
from .models import (
    Author,
    Branch,
    ChangeKind,
    Commit,
    CommitStats,
    Contributor,
    Remote,
    Tag,
)

logger = get_logger(__name__)

FIELD_SEP = "\x1f"
RECORD_SEP = "\x1e"

# hash, author name, author email, ISO author date, parent hashes, subject
LOG_FORMAT = "%H%x1f%an%x1f%ae%x1f%aI%x1f%P%x1f%s%x1e"
BRANCH_FORMAT = "%(refname)%1f%(refname:short)%1f%(objectname)%1f%(upstream:short)%1f%(HEAD)%1f%(symref)"
TAG_FORMAT = "%(refname:short)%1f%(objectname)%1f%(*objectname)%1f%(creatordate:iso-strict)"

# 40 hex chars (SHA-1) or 64 (SHA-256 repositories)
_SHA_RE = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")

# "    12\tJane Doe <jane@example.com>"
_SHORTLOG_RE = re.compile(r"^\s*(\d+)\s+(.*?)\s*<([^>]*)>\s*$")

_FILES_RE = re.compile(r"(\d+) files? changed")
_INSERTIONS_RE = re.compile(r"(\d+) insertions?\(\+\)")
_DELETIONS_RE = re.compile(r"(\d+) deletions?\(-\)")


def is_sha(value: str) -> bool:
    return bool(_SHA_RE.match(value))


def parse_log(raw: str) -> list[Commit]:
    """Parse ``git log --pretty=format:LOG_FORMAT`` output, newest first.

    A truncated trailing record (output cap hit) is dropped with a warning.
    """
    commits: list[Commit] = []
    skipped = 0

    for record in raw.split(RECORD_SEP):
        record = record.strip("\r\n")
        if not record:
            continue

        parts = record.split(FIELD_SEP, 5)
        if len(parts) != 6 or not is_sha(parts[0]):
            skipped += 1
            continue

        sha, name, email, date, parents, subject = parts
        commits.append(
            Commit(
                sha=sha,
                author=Author(name=name, email=email),
                date=date,
                message=subject,
                parents=tuple(p for p in parents.split() if p),
            )
        )

    if skipped:
        if not commits:
            raise ParseFailure(
                "git log output contained no parsable commit records",
                context={"malformed_records": skipped},
            )
        logger.warning("Skipped %d malformed git log records", skipped)

    return commits


def parse_hash_list(raw: str) -> list[str]:
    """Parse one-hash-per-line output (``git log --pretty=format:%H``)."""
    hashes = []
    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        if not is_sha(line):
            raise ParseFailure(f"expected a commit hash, got {line!r}")
        hashes.append(line)
    return hashes


def parse_branches(raw: str) -> list[Branch]:
    """Parse ``git branch -a --format=BRANCH_FORMAT`` output.

    Symbolic refs (``origin/HEAD``) and the detached-HEAD pseudo entry are
    skipped; remote-tracking status comes from the full refname.
    """
    branches: list[Branch] = []

    for line in raw.splitlines():
        if not line.strip():
            continue

        parts = line.split(FIELD_SEP)
        if len(parts) != 6:
            raise ParseFailure(f"unexpected branch record: {line!r}", context={"fields": len(parts)})

        refname, short, commit, upstream, head, symref = (p.strip() for p in parts)
        if symref:
            continue
        if refname.startswith("refs/heads/"):
            is_remote = False
        elif refname.startswith("refs/remotes/"):
            is_remote = True
        else:
            continue

        branches.append(
            Branch(
                name=short,
                commit=commit,
                upstream=upstream or None,
                is_head=head == "*",
                is_remote=is_remote,
            )
        )

    return branches


def parse_ref_names(raw: str) -> list[str]:
    """Parse ``git branch --format=%(refname:short)`` output."""
    return [line.strip() for line in raw.splitlines() if line.strip() and not line.strip().endswith("/HEAD")]


def parse_remotes(raw: str) -> list[Remote]:
    """Parse ``git remote -v`` into one Remote per name, sorted by name."""
    urls: dict[str, dict[str, str]] = {}

    for line in raw.splitlines():
        if not line.strip():
            continue

        parts = line.split()
        if len(parts) < 3:
            raise ParseFailure(f"unexpected remote line: {line!r}")

        name, url, kind = parts[0], parts[1], parts[2]
        entry = urls.setdefault(name, {})
        if kind == "(fetch)":
            entry["fetch"] = url
        elif kind == "(push)":
            entry["push"] = url

    return [
        Remote(name=name, fetch=entry.get("fetch"), push=entry.get("push"))
        for name, entry in sorted(urls.items())
    ]


def parse_shortlog(raw: str) -> list[Contributor]:
    """Parse ``git shortlog -sne`` into contributors aggregated by email.

    Entries sharing an email (the same person under several names) are merged,
    keeping the name with the most commits. Sorted by commit count descending.
    """
    by_email: dict[str, tuple[str, int, int]] = {}  # email -> (name, name_commits, total)

    for line in raw.splitlines():
        if not line.strip():
            continue

        match = _SHORTLOG_RE.match(line)
        if not match:
            raise ParseFailure(f"unexpected shortlog line: {line!r}")

        count = int(match.group(1))
        name = match.group(2).strip()
        email = match.group(3).strip()
        key = email.lower()

        if key in by_email:
            best_name, best_count, total = by_email[key]
            if count > best_count:
                best_name, best_count = name, count
            by_email[key] = (best_name, best_count, total + count)
        else:
            by_email[key] = (name, count, count)

    contributors = [
        Contributor(name=name, email=email, commits=total)
        for email, (name, _, total) in by_email.items()
    ]
    contributors.sort(key=lambda c: (-c.commits, c.email))
    return contributors


def contributors_from_commits(commits: list[Commit]) -> list[Contributor]:
    """Aggregate authorship from already-read commits, by email."""
    counts: dict[str, int] = {}
    names: dict[str, str] = {}
    for c in commits:
        key = c.author.email.lower()
        counts[key] = counts.get(key, 0) + 1
        names.setdefault(key, c.author.name)

    contributors = [Contributor(name=names[k], email=k, commits=n) for k, n in counts.items()]
    contributors.sort(key=lambda c: (-c.commits, c.email))
    return contributors


def parse_tags(raw: str) -> list[Tag]:
    """Parse ``git tag -l --format=TAG_FORMAT``; annotated tags resolve to their commit."""
    tags: list[Tag] = []

    for line in raw.splitlines():
        if not line.strip():
            continue

        parts = line.split(FIELD_SEP)
        if len(parts) != 4:
            raise ParseFailure(f"unexpected tag record: {line!r}", context={"fields": len(parts)})

        name, obj, peeled, date = (p.strip() for p in parts)
        tags.append(Tag(name=name, commit=peeled or obj, date=date))

    return tags


def parse_shortstat(raw: str) -> CommitStats:
    """Parse the summary line of ``git show --shortstat``.

    Merge commits and empty commits print nothing and yield zero stats.
    """
    text = raw.strip()
    if not text:
        return CommitStats()

    summary = text.splitlines()[-1]
    files = _FILES_RE.search(summary)
    if files is None:
        raise ParseFailure(f"unexpected shortstat line: {summary!r}")

    insertions = _INSERTIONS_RE.search(summary)
    deletions = _DELETIONS_RE.search(summary)
    return CommitStats(
        files=int(files.group(1)),
        additions=int(insertions.group(1)) if insertions else 0,
        deletions=int(deletions.group(1)) if deletions else 0,
    )


def parse_numstat(raw: str) -> tuple[int, int]:
    """Sum ``git diff --numstat`` rows into (added, removed); binary rows count as zero."""
    added = 0
    removed = 0
    for line in raw.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        if len(parts) < 3:
            raise ParseFailure(f"unexpected numstat line: {line!r}")
        added += _int_or_zero(parts[0])
        removed += _int_or_zero(parts[1])
    return added, removed


def parse_ahead_behind(raw: str) -> tuple[int, int]:
    """Parse ``git rev-list --left-right --count HEAD...@{upstream}``."""
    parts = raw.split()
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ParseFailure(f"unexpected ahead/behind output: {raw.strip()!r}")
    return int(parts[0]), int(parts[1])


def parse_porcelain(raw: str) -> list[tuple[str, str]]:
    """Split ``git status --porcelain`` v1 output into (XY code, path) pairs.

    Renames and copies (``R  old -> new``) report the new path; quoted paths
    are unquoted.
    """
    entries: list[tuple[str, str]] = []
    for line in raw.split("\n"):
        line = line.rstrip("\r")
        if len(line) < 4:
            continue
        code = line[:2]
        path = line[3:]
        if " -> " in path and ("R" in code or "C" in code):
            path = path.split(" -> ", 1)[1]
        entries.append((code, _unquote(path.strip())))
    return entries


def classify_status(code: str) -> ChangeKind:
    """Map a two-character porcelain code to a change kind.

    Untracked files (``??``) count as additions; anything unrecognised is a
    modification.
    """
    if "A" in code or "?" in code:
        return ChangeKind.ADDED
    if "D" in code:
        return ChangeKind.DELETED
    if "R" in code or "C" in code:
        return ChangeKind.RENAMED
    return ChangeKind.MODIFIED


def _int_or_zero(value: str) -> int:
    value = value.strip()
    return int(value) if value.isdigit() else 0


def _unquote(path: str) -> str:
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        inner = path[1:-1]
        try:
            return inner.encode("latin-1", errors="backslashreplace").decode("unicode_escape").encode(
                "latin-1"
            ).decode("utf-8")
        except (UnicodeDecodeError, UnicodeEncodeError):
            return inner.replace('\\"', '"').replace("\\\\", "\\")
    return path
