"""
Virtual-Time Scheduler

Timers here do not sleep. They register a deadline in simulated time
with a VirtualScheduler, and whoever drives the clock (the simulation,
a test, or the asyncio real-time clock) delivers the due callbacks.

SessionTimer wraps one rearmable deadline. Its armed state is a single
owned value with a monotonically increasing generation token: every
rearm or cancel bumps the token, so a stale fire can never run.
"""

import heapq
import itertools
import logging
import math
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """Handle returned by VirtualScheduler.call_at()"""

    __slots__ = ("deadline", "priority", "callback", "_cancelled", "_done", "_scheduler")

    def __init__(self, deadline: float, priority: int, callback: Callable[[], Any],
                 scheduler: "VirtualScheduler"):
        self.deadline = deadline
        self.priority = priority
        self.callback = callback
        self._cancelled = False
        self._done = False
        self._scheduler = scheduler

    def cancel(self) -> None:
        """Cancel this registration; a cancelled handle never fires"""
        if not self._cancelled and not self._done:
            self._cancelled = True
            self._scheduler._cancelled_count += 1

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "pending"
        return f"TimerHandle(deadline={self.deadline}, priority={self.priority}, {state})"


class VirtualScheduler:
    """
    Discrete-time scheduler

    Callbacks are delivered in (deadline, priority, registration order).
    While a callback runs, `now` equals its deadline.
    """

    def __init__(self, start_time: float = 0):
        self._now = start_time
        self._queue: List[Tuple[float, int, int, TimerHandle]] = []
        self._sequence = itertools.count()
        self._cancelled_count = 0
        self.delivered = 0

    @property
    def now(self) -> float:
        """Current simulated time"""
        return self._now

    def call_at(self, deadline: float, callback: Callable[[], Any],
                priority: int = 0) -> TimerHandle:
        """
        Register callback to fire at an absolute deadline

        Args:
            deadline: Simulated time to fire at (not in the past)
            callback: Zero-argument callable
            priority: Tie breaker for equal deadlines, lower fires first

        Returns:
            TimerHandle that can be cancelled
        """
        if not deadline >= self._now:
            raise ValueError(f"Deadline {deadline} is in the past (now={self._now})")

        handle = TimerHandle(deadline, priority, callback, self)
        heapq.heappush(self._queue, (deadline, priority, next(self._sequence), handle))
        return handle

    def call_later(self, delay: float, callback: Callable[[], Any],
                   priority: int = 0) -> TimerHandle:
        """Register callback to fire `delay` after now"""
        if not delay >= 0:
            raise ValueError(f"Negative delay: {delay}")
        return self.call_at(self._now + delay, callback, priority)

    def pending(self) -> int:
        """Number of registrations that have not fired or been cancelled"""
        return len(self._queue) - self._cancelled_count

    def next_deadline(self) -> Optional[float]:
        """Deadline of the next live registration, or None"""
        self._discard_cancelled()
        if not self._queue:
            return None
        return self._queue[0][0]

    def step(self, limit: Optional[float] = None, inclusive: bool = True) -> bool:
        """
        Deliver the next due callback

        Args:
            limit: Only deliver if its deadline is before (or at) this time
            inclusive: Whether a deadline equal to limit is due

        Returns:
            True if a callback was delivered
        """
        self._discard_cancelled()
        if not self._queue:
            return False

        deadline = self._queue[0][0]
        if limit is not None:
            if deadline > limit or (not inclusive and deadline == limit):
                return False

        _, _, _, handle = heapq.heappop(self._queue)
        handle._done = True
        self._now = deadline
        self.delivered += 1
        handle.callback()
        return True

    def run_until(self, time: float, inclusive: bool = True) -> int:
        """
        Advance the clock to `time`, delivering every due callback

        Callbacks registered while delivering are honoured if they fall
        inside the window.

        Args:
            time: Target simulated time
            inclusive: Deliver callbacks whose deadline equals `time`

        Returns:
            Number of callbacks delivered
        """
        if not time >= self._now:
            raise ValueError(f"Cannot move clock backwards: {time} < {self._now}")

        delivered = 0
        while self.step(time, inclusive):
            delivered += 1

        self._now = time
        return delivered

    def close(self) -> None:
        """Drop every registration; SessionTimers using it report unarmed"""
        for entry in self._queue:
            entry[3]._cancelled = True
        self._queue.clear()
        self._cancelled_count = 0

    def _discard_cancelled(self) -> None:
        while self._queue and self._queue[0][3].cancelled:
            heapq.heappop(self._queue)
            self._cancelled_count -= 1

    def __repr__(self) -> str:
        return f"VirtualScheduler(now={self._now}, pending={self.pending()})"


class SessionTimer:
    """
    One rearmable timer owned by a session

    rearm() is the arbitration primitive for every reset: it takes the
    armed state, cancels the pending fire, registers exactly one new
    deadline from the scheduler's current time and releases. Two rearms
    in the same tick leave one registration, based on the later request.
    """

    def __init__(self, scheduler: VirtualScheduler, name: str,
                 callback: Callable[[], Any], priority: int = 0):
        """
        Initialize timer

        Args:
            scheduler: Scheduler servicing arm/cancel/fire
            name: Name for logging
            callback: Called when the timer expires
            priority: Scheduler tie breaker for equal deadlines
        """
        self.scheduler = scheduler
        self.name = name
        self.priority = priority
        self._callback = callback
        self._handle: Optional[TimerHandle] = None
        self._generation = 0
        self.rearm_count = 0

    @property
    def armed(self) -> bool:
        # VirtualScheduler.close() cancels handles behind the timer's back
        return self._handle is not None and not self._handle.cancelled

    @property
    def deadline(self) -> Optional[float]:
        return self._handle.deadline if self.armed else None

    @property
    def generation(self) -> int:
        return self._generation

    def rearm(self, period: float) -> float:
        """
        Cancel any pending fire and arm a fresh interval from now

        Args:
            period: Interval in simulated time (> 0)

        Returns:
            The new deadline
        """
        if not (period > 0 and math.isfinite(period)):
            raise ValueError(f"{self.name}: timer period must be finite and > 0, got {period}")

        self._generation += 1
        token = self._generation

        if self._handle:
            self._handle.cancel()

        self._handle = self.scheduler.call_later(
            period, lambda: self._fire(token), self.priority
        )
        self.rearm_count += 1

        logger.debug(f"{self.name}: armed for t={self._handle.deadline} (generation {token})")
        return self._handle.deadline

    def cancel(self) -> None:
        """Disarm the timer"""
        self._generation += 1
        if self._handle:
            self._handle.cancel()
            self._handle = None
            logger.debug(f"{self.name}: cancelled")

    def _fire(self, token: int) -> None:
        if token != self._generation:
            logger.debug(f"{self.name}: ignoring stale fire (generation {token})")
            return

        self._handle = None
        self._callback()

    def __repr__(self) -> str:
        return f"SessionTimer({self.name}, deadline={self.deadline})"
