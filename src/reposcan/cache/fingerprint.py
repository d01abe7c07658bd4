"""Canonical content hashes for snapshots and working-tree states.

A canonical hash covers only what a repository *contains*. Fields that move
with the wall clock (``readAt``, ``lastChecked``) and diagnostic fields
(``readErrors``) are stripped, collections with set semantics are sorted, and
the remainder is serialised as JSON with sorted keys before hashing. Two
structurally identical snapshots therefore hash identically regardless of
the order git happened to list branches, tags or dirty files.

Commit order (newest first) and parent order (first parent first) are
meaningful and are preserved.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable, Optional, Union

from ..git.models import RepositorySnapshot, WorkingTreeState

Hashable = Union[RepositorySnapshot, WorkingTreeState, dict]

# Keys dropped anywhere in the serialised tree
VOLATILE_FIELDS = frozenset(
    {
        "readAt",
        "lastChecked",
        "cachedAt",
        "readErrors",
    }
)

# List-valued keys whose order carries no meaning -> sort key for their items
_UNORDERED_LISTS: dict[str, Any] = {
    "branches": lambda item: item if isinstance(item, str) else item.get("name", ""),
    "tags": lambda item: item.get("name", ""),
    "contributors": lambda item: (-item.get("commits", 0), item.get("email", "")),
    "fileChanges": lambda item: item.get("filePath", ""),
    "localBranches": lambda item: item,
    "remoteBranches": lambda item: item,
}


class ChangeDetector:
    """Computes canonical hashes and compares them.

    Args:
        ignore_commit_dates: Also strip commit and tag dates. Synthetic
            repositories built by tests regenerate dates on every build, so
            their dates carry no content.
        extra_volatile: Additional keys to strip.
    """

    def __init__(self, ignore_commit_dates: bool = False, extra_volatile: Iterable[str] = ()):
        volatile = set(VOLATILE_FIELDS) | set(extra_volatile)
        if ignore_commit_dates:
            volatile |= {"date", "firstCommitDate", "lastCommitDate"}
        self.volatile = frozenset(volatile)

    def canonical_payload(self, value: Hashable) -> Any:
        """Return the stripped, order-normalised structure that gets hashed."""
        data = value if isinstance(value, dict) else value.to_dict()
        return self._normalise(data)

    def canonical_hash(self, value: Hashable) -> str:
        payload = json.dumps(
            self.canonical_payload(value),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def has_changed(self, old_hash: Optional[str], new_value: Hashable) -> bool:
        """True iff ``new_value`` hashes differently from ``old_hash``.

        A missing previous hash always counts as a change.
        """
        if old_hash is None:
            return True
        return self.canonical_hash(new_value) != old_hash

    def _normalise(self, node: Any, key: Optional[str] = None) -> Any:
        if isinstance(node, dict):
            return {
                k: self._normalise(v, k) for k, v in node.items() if k not in self.volatile
            }
        if isinstance(node, (list, tuple)):
            items = [self._normalise(v) for v in node]
            sort_key = _UNORDERED_LISTS.get(key) if key else None
            if sort_key is not None:
                items.sort(key=sort_key)
            return items
        return node


_DEFAULT = ChangeDetector()


def canonical_hash(value: Hashable) -> str:
    """Canonical hash using the default volatile-field set."""
    return _DEFAULT.canonical_hash(value)


def has_changed(old_hash: Optional[str], new_value: Hashable) -> bool:
    return _DEFAULT.has_changed(old_hash, new_value)
