# src/reallocator/core/workqueue.py
"""
An asyncio work queue for controller reconcile requests.

Keys are deduplicated while waiting, and a key that is being processed is
never handed to a second worker: if it is added again while in flight it is
parked and re-queued when the worker calls done(). Failed keys are re-added
through a rate limiter that combines per-key exponential backoff with a
global token bucket.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Hashable, List, Optional, Set

from .config import config

logger = logging.getLogger(__name__)


class RateLimiter:
    """Decides how long a key must wait before it is retried."""

    def when(self, item: Hashable) -> float:
        raise NotImplementedError

    def forget(self, item: Hashable) -> None:
        pass

    def num_requeues(self, item: Hashable) -> int:
        return 0


class ItemExponentialFailureRateLimiter(RateLimiter):
    """Per-key backoff: base_delay * 2^failures, capped at max_delay."""

    def __init__(self, base_delay: float, max_delay: float):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: Dict[Hashable, int] = {}

    def when(self, item: Hashable) -> float:
        exp = self._failures.get(item, 0)
        self._failures[item] = exp + 1
        # Avoid float overflow on long outages.
        if exp > 62:
            return self.max_delay
        return min(self.base_delay * (2**exp), self.max_delay)

    def forget(self, item: Hashable) -> None:
        self._failures.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        return self._failures.get(item, 0)


class BucketRateLimiter(RateLimiter):
    """
    Global token bucket shared by every key. Each call reserves one token and
    returns how long the caller has to wait for it.
    """

    def __init__(self, qps: float, burst: int, clock: Callable[[], float] = time.monotonic):
        self.qps = qps
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()

    def when(self, item: Hashable) -> float:
        now = self._clock()
        self._tokens = min(float(self.burst), self._tokens + (now - self._last) * self.qps)
        self._last = now
        self._tokens -= 1
        if self._tokens >= 0:
            return 0.0
        return -self._tokens / self.qps


class MaxOfRateLimiter(RateLimiter):
    """Returns the longest delay of all wrapped limiters."""

    def __init__(self, *limiters: RateLimiter):
        self.limiters = limiters

    def when(self, item: Hashable) -> float:
        return max(limiter.when(item) for limiter in self.limiters)

    def forget(self, item: Hashable) -> None:
        for limiter in self.limiters:
            limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return max(limiter.num_requeues(item) for limiter in self.limiters)


def default_controller_rate_limiter() -> RateLimiter:
    """100ms..10s per-key backoff, bounded by a 10 qps / 100 burst bucket."""
    return MaxOfRateLimiter(
        ItemExponentialFailureRateLimiter(config.RATE_LIMIT_BASE_DELAY, config.RATE_LIMIT_MAX_DELAY),
        BucketRateLimiter(qps=config.RATE_LIMIT_QPS, burst=config.RATE_LIMIT_BURST),
    )


class ShutDown(Exception):
    """Raised by get() once the queue has been shut down."""

    pass


class WorkQueue:
    def __init__(self, name: str, rate_limiter: Optional[RateLimiter] = None):
        self.name = name
        self.rate_limiter = rate_limiter or default_controller_rate_limiter()
        self._queue: List[Hashable] = []
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._timers: Dict[Hashable, asyncio.TimerHandle] = {}
        self._pending_adds: Set[asyncio.Task] = set()
        self._cond = asyncio.Condition()
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._queue)

    def _add_nowait(self, item: Hashable) -> bool:
        if self._shutting_down or item in self._dirty:
            return False
        self._dirty.add(item)
        if item not in self._processing:
            self._queue.append(item)
        return True

    async def add(self, item: Hashable) -> None:
        """Queues the key unless it is already waiting."""
        async with self._cond:
            if self._add_nowait(item):
                self._cond.notify()

    def _spawn_add(self, item: Hashable) -> None:
        task = asyncio.ensure_future(self.add(item))
        self._pending_adds.add(task)
        task.add_done_callback(self._add_done)

    def _add_done(self, task: asyncio.Task) -> None:
        self._pending_adds.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Queue '%s': delayed add failed: %s", self.name, task.exception())

    def add_after(self, item: Hashable, delay: float) -> None:
        """Queues the key after delay seconds. A shorter pending delay for the same key wins."""
        if self._shutting_down:
            return
        if delay <= 0:
            self._spawn_add(item)
            return

        loop = asyncio.get_running_loop()
        existing = self._timers.get(item)
        if existing is not None:
            if existing.when() <= loop.time() + delay:
                return
            existing.cancel()

        def fire():
            self._timers.pop(item, None)
            self._spawn_add(item)

        self._timers[item] = loop.call_later(delay, fire)

    def add_rate_limited(self, item: Hashable) -> float:
        """Queues the key after the delay chosen by the rate limiter and returns that delay."""
        delay = self.rate_limiter.when(item)
        logger.debug("Queue '%s': requeueing %s in %.3fs", self.name, item, delay)
        self.add_after(item, delay)
        return delay

    def forget(self, item: Hashable) -> None:
        """Resets the key's failure history after a successful reconcile."""
        self.rate_limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return self.rate_limiter.num_requeues(item)

    async def get(self) -> Hashable:
        """Waits for the next key and marks it as processing."""
        async with self._cond:
            while not self._queue and not self._shutting_down:
                await self._cond.wait()
            if self._shutting_down:
                raise ShutDown(self.name)
            item = self._queue.pop(0)
            self._processing.add(item)
            self._dirty.discard(item)
            return item

    async def done(self, item: Hashable) -> None:
        """Marks the key as processed. Re-queues it if it was added while in flight."""
        async with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()

    def is_processing(self, item: Hashable) -> bool:
        return item in self._processing

    async def shutdown(self) -> None:
        async with self._cond:
            self._shutting_down = True
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._cond.notify_all()
