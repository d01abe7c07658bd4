"""Scan scheduler and batch runner.

Drives history scans across many repositories with a concurrency bound,
per-repository fault isolation and an at-most-one-scan-per-identity
guarantee. Every scan ends as a ``RepoScanResult``; failures are values in a
report, never exceptions that abort a batch.

Per-repository state machine::

    IDLE -> SCANNING -> SUCCEEDED | FAILED

There is no cancelled state: a scan runs to completion, to a process-level
failure, or past its deadline (reported as a failure with code RS201).
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from ..cache import CacheEntry, CacheHealth, ChangeDetector, SnapshotCache
from ..config import DEFAULT_CONFIG, ScanConfig
from ..exceptions import PathNotAccessible, RepoScanError, ScanTimeout
from ..git import GitExecutor, HistoryReader, RepositorySnapshot, WorkingTreeReader, WorkingTreeState
from ..logging_config import get_logger
from .flight import KeyedRateLimiter, SingleFlight

logger = get_logger(__name__)


class RefreshPolicy(str, Enum):
    FORCE_REFRESH = "forceRefresh"
    RESPECT_FRESHNESS = "respectFreshness"


class ScanStatus(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ScanOutcome(str, Enum):
    SCANNED = "scanned"
    SKIPPED_FRESH = "skipped_fresh"  # cache entry younger than max age
    SHARED = "shared"  # joined a scan already in flight
    FAILED = "failed"


@dataclass(frozen=True)
class ScanTarget:
    """A repository to scan: a stable identity plus its working-copy path."""

    identity: str
    path: str

    @classmethod
    def from_path(cls, path: str | Path) -> ScanTarget:
        resolved = str(Path(path).expanduser().resolve())
        return cls(identity=resolved, path=resolved)


TargetLike = Union[ScanTarget, str, Path]


def as_target(target: TargetLike) -> ScanTarget:
    return target if isinstance(target, ScanTarget) else ScanTarget.from_path(target)


@dataclass(frozen=True)
class ScanErrorDetail:
    """Per-repository failure record carried in a batch report."""

    identity: str
    path: str
    code: str
    message: str
    offline: bool = False  # path unreachable on this machine

    @classmethod
    def from_exception(cls, target: ScanTarget, error: BaseException) -> ScanErrorDetail:
        if isinstance(error, RepoScanError):
            code, message = error.code.value, error.message
        else:
            code, message = type(error).__name__, str(error)
        return cls(
            identity=target.identity,
            path=target.path,
            code=code,
            message=message,
            offline=isinstance(error, PathNotAccessible),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "path": self.path,
            "code": self.code,
            "message": self.message,
            "offline": self.offline,
        }


@dataclass(frozen=True)
class RepoScanResult:
    target: ScanTarget
    status: ScanStatus
    outcome: ScanOutcome
    snapshot: Optional[RepositorySnapshot] = None
    changed: bool = False
    error: Optional[ScanErrorDetail] = None
    # Last good cache entry, attached to failures when one exists
    fallback: Optional[CacheEntry] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is ScanStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.target.identity,
            "path": self.target.path,
            "status": self.status.value,
            "outcome": self.outcome.value,
            "changed": self.changed,
            "durationSeconds": round(self.duration_seconds, 3),
            "error": self.error.to_dict() if self.error else None,
            "hasFallback": self.fallback is not None,
        }


@dataclass(frozen=True)
class BatchReport:
    """Outcome of a batch: one result per requested repository."""

    results: tuple[RepoScanResult, ...]

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok and r.outcome is not ScanOutcome.SKIPPED_FRESH)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.outcome is ScanOutcome.SKIPPED_FRESH)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status is ScanStatus.FAILED)

    @property
    def changed(self) -> int:
        return sum(1 for r in self.results if r.changed)

    @property
    def errors(self) -> list[ScanErrorDetail]:
        return [r.error for r in self.results if r.error is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "changed": self.changed,
            "errors": [e.to_dict() for e in self.errors],
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class SnapshotView:
    """The snapshot a consumer should display for one scan result.

    ``source`` is ``live`` for a fresh read, ``cache`` for a cached snapshot
    and ``none`` when nothing is available (show a placeholder).
    """

    snapshot: Optional[RepositorySnapshot]
    source: str
    stale: bool
    offline: bool
    last_updated: Optional[float] = None


@dataclass(frozen=True)
class StatePoll:
    """Result of one working-tree poll."""

    target: ScanTarget
    state: Optional[WorkingTreeState]
    changed: bool = False
    throttled: bool = False  # inside the debounce window; state is the cached one
    shared: bool = False
    error: Optional[ScanErrorDetail] = None


class ScanScheduler:
    """Runs history scans and working-tree polls against shared caches.

    Args:
        config: Limits, deadlines and cache settings
        reader: History reader (built from ``config`` when omitted)
        state_reader: Working-tree reader (built from ``config`` when omitted)
        history_cache: Snapshot cache for history reads
        state_cache: Snapshot cache for working-tree polls
    """

    def __init__(
        self,
        config: ScanConfig = DEFAULT_CONFIG,
        reader: Optional[HistoryReader] = None,
        state_reader: Optional[WorkingTreeReader] = None,
        history_cache: Optional[SnapshotCache] = None,
        state_cache: Optional[SnapshotCache] = None,
        detector: Optional[ChangeDetector] = None,
    ):
        self.config = config

        if reader is None or state_reader is None:
            executor = GitExecutor(
                git_binary=config.git_binary,
                timeout=config.process_timeout_seconds,
                max_output_bytes=config.max_output_bytes,
            )
            if reader is None:
                reader = HistoryReader(
                    executor,
                    branch_walk_depth=config.branch_walk_depth,
                    stat_concurrency=config.stat_concurrency,
                )
            if state_reader is None:
                state_reader = WorkingTreeReader(executor)
        self.reader = reader
        self.state_reader = state_reader

        # Explicit None checks: an empty SnapshotCache is falsy
        if history_cache is None:
            history_cache = SnapshotCache(
                max_entries=config.cache_max_entries,
                detector=detector,
                cache_dir=config.cache_dir,
                name="history",
            )
        if state_cache is None:
            state_cache = SnapshotCache(
                max_entries=config.cache_max_entries,
                detector=detector,
                name="state",
            )
        self.history_cache = history_cache
        self.state_cache = state_cache

        self._scans: SingleFlight[RepoScanResult] = SingleFlight()
        self._polls: SingleFlight[Any] = SingleFlight()
        self._limiter = KeyedRateLimiter(config.state_debounce_seconds)
        self._status: dict[str, ScanStatus] = {}
        self._refreshing = False

    # ── history scans ────────────────────────────────────────────

    def status(self, identity: str) -> ScanStatus:
        return self._status.get(identity, ScanStatus.IDLE)

    @property
    def tracked_statuses(self) -> int:
        return len(self._status)

    async def scan(
        self,
        target: TargetLike,
        policy: RefreshPolicy = RefreshPolicy.RESPECT_FRESHNESS,
        max_age: Optional[float] = None,
    ) -> RepoScanResult:
        """Scan one repository. Never raises for scan failures."""
        target = as_target(target)
        if max_age is None:
            max_age = self.config.history_max_age_seconds

        if policy is RefreshPolicy.RESPECT_FRESHNESS and self.history_cache.is_fresh(
            target.identity, max_age
        ):
            entry = self.history_cache.get(target.identity)
            if entry is not None and isinstance(entry.value, RepositorySnapshot):
                logger.debug(f"Skipping {target.identity}: cache is fresh")
                return RepoScanResult(
                    target=target,
                    status=ScanStatus.SUCCEEDED,
                    outcome=ScanOutcome.SKIPPED_FRESH,
                    snapshot=entry.value,
                )

        result, shared = await self._scans.do(target.identity, lambda: self._run_scan(target))
        if shared:
            logger.debug(f"Duplicate scan request for {target.identity} joined in-flight scan")
            # Only the leader reports a content change
            return replace(result, target=target, outcome=ScanOutcome.SHARED, changed=False)
        return result

    async def scan_batch(
        self,
        targets: Iterable[TargetLike],
        concurrency: Optional[int] = None,
        policy: RefreshPolicy = RefreshPolicy.RESPECT_FRESHNESS,
        max_age: Optional[float] = None,
    ) -> BatchReport:
        """Scan every target with at most ``concurrency`` scans running at once."""
        resolved = [as_target(t) for t in targets]
        limit = self.config.concurrency if concurrency is None else concurrency
        if limit < 1:
            raise ValueError("concurrency must be at least 1")
        semaphore = asyncio.Semaphore(limit)

        async def bounded(target: ScanTarget) -> RepoScanResult:
            async with semaphore:
                return await self.scan(target, policy=policy, max_age=max_age)

        logger.info(f"Scanning {len(resolved)} repositories (concurrency={limit})")
        outcomes = await asyncio.gather(
            *(bounded(t) for t in resolved), return_exceptions=True
        )

        results: list[RepoScanResult] = []
        for target, outcome in zip(resolved, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Scan of {target.identity} raised: {outcome}")
                results.append(self._failure(target, outcome, 0.0))
            else:
                results.append(outcome)

        report = BatchReport(results=tuple(results))
        logger.info(
            f"Batch complete: {report.succeeded} succeeded, {report.skipped} skipped, "
            f"{report.failed} failed"
        )
        return report

    async def refresh_stale(
        self,
        targets: Iterable[TargetLike],
        max_age: Optional[float] = None,
        batch_limit: int = 10,
        concurrency: Optional[int] = None,
    ) -> Optional[BatchReport]:
        """Rescan uncached or stale repositories, at most ``batch_limit`` per pass.

        Returns None when another refresh pass is still running.
        """
        if self._refreshing:
            logger.info("Refresh already in progress, skipping")
            return None

        if max_age is None:
            max_age = self.config.history_max_age_seconds

        self._refreshing = True
        try:
            stale = [
                t
                for t in (as_target(t) for t in targets)
                if not self.history_cache.is_fresh(t.identity, max_age)
            ]
            if not stale:
                logger.debug("No stale repositories to refresh")
                return BatchReport(results=())
            if len(stale) > batch_limit:
                logger.info(f"Refreshing {batch_limit} of {len(stale)} stale repositories")
            return await self.scan_batch(
                stale[:batch_limit],
                concurrency=concurrency,
                policy=RefreshPolicy.FORCE_REFRESH,
            )
        finally:
            self._refreshing = False

    def snapshot_for(self, result: RepoScanResult) -> SnapshotView:
        """Pick what to display for a result: live data or the flagged cached copy."""
        if result.ok and result.snapshot is not None:
            from_cache = result.outcome is ScanOutcome.SKIPPED_FRESH
            entry = self.history_cache.get(result.target.identity) if from_cache else None
            return SnapshotView(
                snapshot=result.snapshot,
                source="cache" if from_cache else "live",
                stale=False,
                offline=False,
                last_updated=entry.last_updated if entry else None,
            )

        offline = result.error.offline if result.error else False
        fallback = result.fallback or self.history_cache.get(result.target.identity)
        if fallback is not None and isinstance(fallback.value, RepositorySnapshot):
            return SnapshotView(
                snapshot=fallback.value,
                source="cache",
                stale=True,
                offline=offline,
                last_updated=fallback.last_updated,
            )
        return SnapshotView(snapshot=None, source="none", stale=True, offline=offline)

    def cache_health(self, max_age: Optional[float] = None) -> CacheHealth:
        if max_age is None:
            max_age = self.config.history_max_age_seconds
        return self.history_cache.health(max_age)

    # ── working-tree polling ─────────────────────────────────────

    async def poll_state(self, target: TargetLike) -> StatePoll:
        """Read the working tree unless polled within the debounce window.

        ``changed`` is True only for the caller that stored a state whose
        canonical hash differs from the previous one.
        """
        target = as_target(target)

        if not self._limiter.allow(target.identity):
            entry = self.state_cache.get(target.identity)
            logger.debug(f"Poll of {target.identity} throttled")
            return StatePoll(
                target=target,
                state=entry.value if entry else None,
                throttled=True,
            )

        async def read_and_store():
            state = await self.state_reader.read(target.path)
            return self.state_cache.put(target.identity, state)

        try:
            update, shared = await self._polls.do(target.identity, read_and_store)
        except RepoScanError as e:
            logger.warning(f"Working-tree poll of {target.identity} failed: {e}")
            entry = self.state_cache.get(target.identity)
            return StatePoll(
                target=target,
                state=entry.value if entry else None,
                error=ScanErrorDetail.from_exception(target, e),
            )

        return StatePoll(
            target=target,
            state=update.entry.value,
            changed=update.changed and not shared,
            shared=shared,
        )

    def close(self) -> None:
        self.history_cache.close()
        self.state_cache.close()

    # ── internals ────────────────────────────────────────────────

    def _set_status(self, identity: str, status: ScanStatus) -> None:
        # Most recent last; bounded like the history cache, never dropping a live scan
        self._status.pop(identity, None)
        self._status[identity] = status
        excess = len(self._status) - self.config.cache_max_entries
        if excess <= 0:
            return
        stale = [
            key
            for key, value in self._status.items()
            if key != identity and value is not ScanStatus.SCANNING
        ]
        for key in stale[:excess]:
            del self._status[key]

    async def _run_scan(self, target: ScanTarget) -> RepoScanResult:
        self._set_status(target.identity, ScanStatus.SCANNING)
        started = time.monotonic()
        deadline = self.config.scan_deadline_seconds
        logger.debug(f"Scanning {target.identity}")

        try:
            snapshot = await asyncio.wait_for(
                self.reader.read(target.path, self.config.history_options()),
                timeout=deadline,
            )
        except TimeoutError:
            error = ScanTimeout(
                f"Scan of {target.path} exceeded its {deadline:g}s deadline",
                context={"repo_path": target.path, "deadline_seconds": deadline},
            )
            return self._failure(target, error, time.monotonic() - started)
        except RepoScanError as e:
            return self._failure(target, e, time.monotonic() - started)
        except Exception as e:
            logger.exception(f"Unexpected error scanning {target.identity}")
            return self._failure(target, e, time.monotonic() - started)

        update = self.history_cache.put(target.identity, snapshot)
        self._set_status(target.identity, ScanStatus.SUCCEEDED)
        return RepoScanResult(
            target=target,
            status=ScanStatus.SUCCEEDED,
            outcome=ScanOutcome.SCANNED,
            snapshot=snapshot,
            changed=update.changed,
            duration_seconds=time.monotonic() - started,
        )

    def _failure(
        self, target: ScanTarget, error: BaseException, duration: float
    ) -> RepoScanResult:
        detail = ScanErrorDetail.from_exception(target, error)
        self._set_status(target.identity, ScanStatus.FAILED)
        fallback = self.history_cache.get(target.identity)
        if detail.offline:
            logger.warning(
                f"Repository unavailable: {target.path}"
                + ("; using cached data" if fallback else "")
            )
        else:
            logger.error(f"Scan of {target.identity} failed: [{detail.code}] {detail.message}")
        return RepoScanResult(
            target=target,
            status=ScanStatus.FAILED,
            outcome=ScanOutcome.FAILED,
            error=detail,
            fallback=fallback,
            duration_seconds=duration,
        )
