# necrometer/scheduler.py
import asyncio
import heapq
import itertools
from typing import Callable, Optional, Set


class TimerHandle:
    """One pending callback. Periodic timers keep their slot in the ordering."""

    __slots__ = ("when", "seq", "interval", "fn", "name", "cancelled")

    def __init__(self, when, seq, interval, fn, name):
        self.when = when
        self.seq = seq
        self.interval = interval
        self.fn = fn
        self.name = name
        self.cancelled = False

    def __lt__(self, other):
        return (self.when, self.seq) < (other.when, other.seq)

    def cancel(self):
        self.cancelled = True


class Scheduler:
    """
    Single-threaded cooperative scheduler on a millisecond clock.

    - call_every(ms, fn) / call_later(ms, fn) register timers
    - advance(ms) runs everything that falls due, in time order; timers due
      at the same instant run in registration order
    - run() drives advance() from the asyncio loop in real time
    - stop() cancels every timer and spawned task synchronously
    """

    def __init__(self, start_ms: float = 0.0, resolution_ms: float = 4.0):
        self._now = float(start_ms)
        self.resolution_ms = resolution_ms
        self._heap = []
        self._seq = itertools.count()
        self._tasks: Set[asyncio.Task] = set()
        self.running = False

    def now(self) -> float:
        return self._now

    # ------------------------------------------------------------
    def call_later(self, delay_ms: float, fn: Callable[[], None], name: Optional[str] = None) -> TimerHandle:
        return self._push(self._now + max(0.0, delay_ms), None, fn, name)

    def call_every(self, interval_ms: float, fn: Callable[[], None], name: Optional[str] = None) -> TimerHandle:
        if interval_ms <= 0:
            raise ValueError("interval must be positive")
        return self._push(self._now + interval_ms, interval_ms, fn, name)

    def _push(self, when, interval, fn, name):
        handle = TimerHandle(when, next(self._seq), interval, fn, name or getattr(fn, "__name__", "timer"))
        heapq.heappush(self._heap, handle)
        return handle

    def cancel(self, handle: Optional[TimerHandle]):
        if handle is not None:
            handle.cancel()

    def pending(self) -> int:
        return sum(1 for h in self._heap if not h.cancelled)

    # ------------------------------------------------------------
    def advance(self, ms: float):
        """Move the clock forward by `ms`, firing due timers on the way."""
        target = self._now + max(0.0, ms)
        while self._heap and self._heap[0].when <= target:
            handle = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            self._now = handle.when
            if handle.interval is not None:
                handle.when += handle.interval
                heapq.heappush(self._heap, handle)
            self._fire(handle)
        self._now = target

    def _fire(self, handle: TimerHandle):
        try:
            handle.fn()
        except Exception as e:
            print(f"[Scheduler] {handle.name} error: {e}")

    # ------------------------------------------------------------
    def spawn(self, coro) -> Optional[asyncio.Task]:
        """Run a coroutine on the current event loop, tracked so stop() can cancel it."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            print("[Scheduler] no running event loop; dropping async work.")
            coro.close()
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self):
        """Advance the clock in real time until stop() is called."""
        loop = asyncio.get_running_loop()
        self.running = True
        last = loop.time()
        while self.running:
            await asyncio.sleep(self.resolution_ms / 1000.0)
            if not self.running:
                break
            now = loop.time()
            self.advance((now - last) * 1000.0)
            last = now

    def stop(self):
        self.running = False
        for handle in self._heap:
            handle.cancel()
        self._heap.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
