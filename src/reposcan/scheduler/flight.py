"""Per-key coordination primitives for the scan scheduler.

``SingleFlight`` collapses concurrent calls for one key into a single
underlying operation. ``KeyedRateLimiter`` enforces a minimum gap between
operations for the same key, replacing ad hoc "last checked" timestamp
comparisons at call sites.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

from ..logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Minimum gap between working-tree polls of one repository
DEBOUNCE_SECONDS = 2.0


class SingleFlight(Generic[T]):
    """At most one in-flight operation per key.

    The first caller for a key starts the operation; callers arriving while
    it runs await the same future and receive the same result or exception.
    All coordination happens on one event loop, so no lock is needed.
    """

    def __init__(self) -> None:
        self._in_flight: dict[Hashable, asyncio.Future[T]] = {}

    def busy(self, key: Hashable) -> bool:
        return key in self._in_flight

    @property
    def in_flight(self) -> frozenset:
        return frozenset(self._in_flight)

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> tuple[T, bool]:
        """Run ``fn`` for ``key`` unless it is already running.

        Returns:
            (result, shared) where ``shared`` is True when this caller joined
            an operation started by someone else.
        """
        existing = self._in_flight.get(key)
        if existing is not None:
            logger.debug(f"Joining in-flight operation for {key}")
            # Shield so a cancelled joiner does not cancel the leader's work
            return await asyncio.shield(existing), True

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = await fn()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unjoined failure is not reported as unhandled
            future.exception()
            raise
        else:
            future.set_result(result)
            return result, False
        finally:
            del self._in_flight[key]


class KeyedRateLimiter:
    """Allow one operation per key per ``interval`` seconds.

    ``allow`` is a non-blocking check-and-consume: it returns True and
    records the time when the key's window has elapsed, otherwise False.
    """

    def __init__(
        self,
        interval: float = DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval < 0:
            raise ValueError("interval must be non-negative")
        self.interval = interval
        self._clock = clock
        self._last: dict[Hashable, float] = {}

    def allow(self, key: Hashable) -> bool:
        now = self._clock()
        self._prune(now)
        last = self._last.get(key)
        if last is not None and now - last < self.interval:
            return False
        self._last[key] = now
        return True

    def remaining(self, key: Hashable) -> float:
        """Seconds until ``key`` is allowed again (0 when allowed now)."""
        last = self._last.get(key)
        if last is None:
            return 0.0
        return max(0.0, self.interval - (self._clock() - last))

    def reset(self, key: Hashable | None = None) -> None:
        if key is None:
            self._last.clear()
        else:
            self._last.pop(key, None)

    def __len__(self) -> int:
        return len(self._last)

    def _prune(self, now: float) -> None:
        # Keys whose window has elapsed behave exactly like unseen keys
        expired = [k for k, t in self._last.items() if now - t >= self.interval]
        for k in expired:
            del self._last[k]
