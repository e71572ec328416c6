"""
model-router: Per-client admission control.

Two independent fixed windows per client identifier:
- burst: 10 seconds, guards against request spikes
- sustained: 60 seconds, guards steady-state throughput

The Nth request in a window where N == limit is admitted, the (N+1)th is
rejected with a retry-after hint. Windows are created lazily and swept
periodically; a swept identifier behaves exactly like a new one.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from model_router.errors import BurstLimitExceeded, SustainedLimitExceeded

logger = logging.getLogger(__name__)

BURST_WINDOW = 10.0
SUSTAINED_WINDOW = 60.0
CLEANUP_INTERVAL = 60.0
_BURST_SUFFIX = ":burst"


@dataclass
class UsageWindow:
    """Request counter for one identifier and one window.

    Attributes:
        count: Requests admitted in the current window.
        reset_time: Epoch seconds at which the window closes.
    """

    count: int
    reset_time: float


class RateLimiter:
    """In-memory burst + sustained rate limiter.

    Thread-safe: check-and-increment runs under a lock, so it is atomic for
    both asyncio tasks and threads.

    Example::

        limiter = RateLimiter(requests_per_minute=50, burst_limit=10)
        await limiter.start()          # periodic cleanup
        limiter.check_limit("client-42")  # raises RateLimitExceeded when over
        await limiter.stop()
    """

    def __init__(
        self,
        requests_per_minute: int = 50,
        burst_limit: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.requests_per_minute = requests_per_minute
        self.burst_limit = burst_limit
        self._clock = clock
        self._usage: dict[str, UsageWindow] = {}
        self._burst_usage: dict[str, UsageWindow] = {}
        self._lock = threading.Lock()
        self._cleanup_task: asyncio.Task[None] | None = None

    def check_limit(self, identifier: str = "anonymous") -> None:
        """Admit one request for ``identifier`` or raise.

        Raises:
            BurstLimitExceeded: The 10 second window is full.
            SustainedLimitExceeded: The 60 second window is full.
        """
        with self._lock:
            now = self._clock()
            retry = self._admit(
                self._burst_usage, f"{identifier}{_BURST_SUFFIX}",
                self.burst_limit, BURST_WINDOW, now,
            )
            if retry is not None:
                logger.warning(f"Burst limit hit for '{identifier}' (retry in {retry}s)")
                raise BurstLimitExceeded(identifier, retry)

            retry = self._admit(
                self._usage, identifier, self.requests_per_minute, SUSTAINED_WINDOW, now
            )
            if retry is not None:
                logger.warning(f"Rate limit hit for '{identifier}' (retry in {retry}s)")
                raise SustainedLimitExceeded(identifier, retry)

    @staticmethod
    def _admit(
        windows: dict[str, UsageWindow], key: str, limit: int, length: float, now: float
    ) -> int | None:
        """Increment the window for ``key``. Returns retry-after seconds if full."""
        window = windows.get(key)
        if window is None:
            window = UsageWindow(count=0, reset_time=now + length)
            windows[key] = window

        if now > window.reset_time:
            window.count = 0
            window.reset_time = now + length

        if window.count >= limit:
            return math.ceil(window.reset_time - now)

        window.count += 1
        return None

    def get_usage(self, identifier: str) -> dict[str, dict[str, Any]]:
        """Snapshot of both windows for ``identifier``. Never creates state."""
        with self._lock:
            now = self._clock()
            return {
                "sustained": self._snapshot(
                    self._usage.get(identifier), self.requests_per_minute,
                    SUSTAINED_WINDOW, now,
                ),
                "burst": self._snapshot(
                    self._burst_usage.get(f"{identifier}{_BURST_SUFFIX}"),
                    self.burst_limit, BURST_WINDOW, now,
                ),
            }

    @staticmethod
    def _snapshot(
        window: UsageWindow | None, limit: int, length: float, now: float
    ) -> dict[str, Any]:
        count = window.count if window else 0
        return {
            "count": count,
            "limit": limit,
            "reset_time": window.reset_time if window else now + length,
            "remaining": max(0, limit - count),
        }

    def reset_usage(self, identifier: str) -> None:
        """Forget all usage for ``identifier``."""
        with self._lock:
            self._usage.pop(identifier, None)
            self._burst_usage.pop(f"{identifier}{_BURST_SUFFIX}", None)

    def get_all_usage(self) -> dict[str, Any]:
        """Usage for every identifier with a sustained window."""
        with self._lock:
            identifiers = list(self._usage)
        return {
            "total_clients": len(identifiers),
            "clients": {identifier: self.get_usage(identifier) for identifier in identifiers},
        }

    def update_limits(
        self, requests_per_minute: int | None = None, burst_limit: int | None = None
    ) -> None:
        """Change the limits; existing windows keep their counts."""
        with self._lock:
            if requests_per_minute is not None:
                self.requests_per_minute = requests_per_minute
            if burst_limit is not None:
                self.burst_limit = burst_limit

    def cleanup(self) -> int:
        """Drop windows that closed more than one window-length ago.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            stale = [
                k for k, w in self._usage.items() if now > w.reset_time + SUSTAINED_WINDOW
            ]
            for key in stale:
                del self._usage[key]
            stale_burst = [
                k for k, w in self._burst_usage.items() if now > w.reset_time + BURST_WINDOW
            ]
            for key in stale_burst:
                del self._burst_usage[key]

        removed = len(stale) + len(stale_burst)
        if removed:
            logger.debug(f"Rate limiter cleanup removed {removed} window(s)")
        return removed

    # ──────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the periodic cleanup task on the running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        """Cancel the cleanup task."""
        task, self._cleanup_task = self._cleanup_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    @property
    def running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(CLEANUP_INTERVAL)
            self.cleanup()
