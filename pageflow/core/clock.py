"""
Schedulers for delayed, cancellable callbacks.

All times are milliseconds. Production code runs on the asyncio event loop;
tests drive a ManualScheduler so timing invariants can be asserted exactly.
"""

import asyncio
import heapq
import itertools
from typing import Callable, List, Optional, Protocol, Tuple

from pageflow.core.logging import LogContext

logger = LogContext(__name__)


class TimerHandle:
    """Cancellation token for a scheduled callback"""

    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self._callback = callback
        self._cancelled = False
        self._fired = False
        self._native: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._native is not None:
            self._native.cancel()

    def _run(self) -> None:
        if self._cancelled or self._fired:
            return
        self._fired = True
        self._callback()


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(
        self, delay_ms: float, callback: Callable[[], None]
    ) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop"""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time() * 1000

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        delay_ms = max(0.0, delay_ms)
        handle = TimerHandle(self.now() + delay_ms, callback)
        handle._native = self.loop.call_later(delay_ms / 1000, handle._run)
        return handle


class ManualScheduler:
    """
    Virtual clock for deterministic tests.

    Time only moves when advance()/advance_to() is called. Due callbacks run
    in due-time order, ties in scheduling order, with now() set to each
    callback's due time while it runs.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(self._now + max(0.0, delay_ms), callback)
        heapq.heappush(self._queue, (handle.due, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that have neither fired nor been cancelled"""
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, delta_ms: float) -> int:
        """Move the clock forward by delta_ms, firing everything due on the way"""
        return self.advance_to(self._now + delta_ms)

    def advance_to(self, target: float) -> int:
        if target < self._now:
            raise ValueError(f"Cannot move clock backwards ({target} < {self._now})")

        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = due
            handle._run()
            fired += 1

        self._now = target
        if fired:
            logger.debug(
                "Manual clock advanced",
                extra={"now_ms": self._now, "fired": fired},
            )
        return fired

    def run_all(self) -> int:
        """Fire every pending callback, advancing to the last due time"""
        fired = 0
        while any(not h.cancelled for _, _, h in self._queue):
            fired += self.advance_to(max(self._now, self._queue[0][0]))
        return fired
