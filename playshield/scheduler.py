import asyncio
import heapq
import itertools
import time
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        ...

    def call_every(self, interval_ms: int, callback: Callable[[], None]) -> TimerHandle:
        ...

    def now_ms(self) -> int:
        ...


class _SimulatedTimer:
    def __init__(self, scheduler, due_ms, callback, interval_ms=None):
        self._scheduler = scheduler
        self.due_ms = due_ms
        self.callback = callback
        self.interval_ms = interval_ms
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class SimulatedScheduler:
    """
    Deterministic virtual clock. Nothing runs until advance() is called;
    timers fire in due-time order, ties in scheduling order.
    """

    def __init__(self, start_ms=0):
        self._now_ms = int(start_ms)
        self._queue = []
        self._seq = itertools.count()

    def now_ms(self) -> int:
        return self._now_ms

    def _push(self, timer):
        heapq.heappush(self._queue, (timer.due_ms, next(self._seq), timer))

    def call_later(self, delay_ms, callback):
        timer = _SimulatedTimer(self, self._now_ms + max(0, int(delay_ms)), callback)
        self._push(timer)
        return timer

    def call_every(self, interval_ms, callback):
        interval_ms = max(1, int(interval_ms))
        timer = _SimulatedTimer(self, self._now_ms + interval_ms, callback, interval_ms=interval_ms)
        self._push(timer)
        return timer

    def pending(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def advance(self, ms) -> int:
        """Moves the clock forward, running every timer that comes due. Returns callbacks run."""
        target = self._now_ms + max(0, int(ms))
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due_ms, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now_ms = due_ms
            if timer.interval_ms is not None:
                timer.due_ms = due_ms + timer.interval_ms
                self._push(timer)
            timer.callback()
            ran += 1
        self._now_ms = target
        return ran


class _RepeatingHandle:
    def __init__(self, loop, interval_s, callback):
        self._loop = loop
        self._interval_s = interval_s
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = loop.call_later(interval_s, self._fire)

    def _fire(self):
        if self._handle is None:
            return
        self._handle = self._loop.call_later(self._interval_s, self._fire)
        self._callback()

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class SchedulerUnavailable(RuntimeError):
    pass


class AsyncioScheduler:
    """
    Timers on an asyncio loop; callbacks run on the loop thread.

    Without an explicit loop the running loop is looked up on every call, so
    the scheduler can be built before the loop starts. Arming a timer with no
    loop running raises SchedulerUnavailable.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._explicit_loop = loop

    def _loop(self) -> asyncio.AbstractEventLoop:
        if self._explicit_loop is not None:
            return self._explicit_loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            raise SchedulerUnavailable(
                "no running asyncio loop; arm timers inside the loop or pass scheduler=SimulatedScheduler()"
            ) from None

    def now_ms(self) -> int:
        try:
            return int(self._loop().time() * 1000)
        except SchedulerUnavailable:
            # Same clock the default event loop reads.
            return int(time.monotonic() * 1000)

    def call_later(self, delay_ms, callback):
        return self._loop().call_later(max(0, int(delay_ms)) / 1000.0, callback)

    def call_every(self, interval_ms, callback):
        return _RepeatingHandle(self._loop(), max(1, int(interval_ms)) / 1000.0, callback)
