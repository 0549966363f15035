from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, List, Optional, Protocol


TimerCallback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None:  # pragma: no cover - interface
        ...


class Clock(Protocol):
    """Clock capability injected into the scheduler: a monotonic now()
    plus a one-shot timer."""

    def now(self) -> float:  # pragma: no cover - interface
        ...

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:  # pragma: no cover - interface
        ...


class _ManualTimer:
    def __init__(self, due: float, seq: int, callback: TimerCallback):
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        # No-op after firing or a previous cancel
        self.cancelled = True

    def __lt__(self, other: "_ManualTimer") -> bool:
        return (self.due, self.seq) < (other.due, other.seq)


class ManualClock:
    """Deterministic clock for tests; time only moves through advance()."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._heap: List[_ManualTimer] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: TimerCallback) -> _ManualTimer:
        t = _ManualTimer(self._now + max(0.0, float(delay)), next(self._seq), callback)
        heapq.heappush(self._heap, t)
        return t

    def pending(self) -> int:
        return sum(1 for t in self._heap if not t.cancelled)

    def next_due(self) -> Optional[float]:
        live = [t.due for t in self._heap if not t.cancelled]
        return min(live) if live else None

    def advance(self, seconds: float) -> int:
        """Move time forward, firing due timers in order. Returns how many fired.

        Timers armed by callbacks fire within the same call when they fall due
        before the target time; now() reads each timer's due time while it runs.
        """
        target = self._now + max(0.0, float(seconds))
        fired = 0
        while self._heap and self._heap[0].due <= target:
            t = heapq.heappop(self._heap)
            if t.cancelled:
                continue
            self._now = max(self._now, t.due)
            t.fired = True
            fired += 1
            t.callback()
        self._now = target
        return fired


class LoopClock:
    """Clock over a running asyncio loop.

    Exceptions escaping a timer callback go to `on_error` rather than the
    loop's default handler, so the owner can propagate them.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, on_error: Optional[Callable[[BaseException], None]] = None):
        self._loop = loop
        self._on_error = on_error

    def now(self) -> float:
        return self._loop.time()

    def call_later(self, delay: float, callback: TimerCallback) -> asyncio.TimerHandle:
        def _guarded():
            try:
                callback()
            except Exception as e:
                if self._on_error is None:
                    raise
                self._on_error(e)

        return self._loop.call_later(max(0.0, float(delay)), _guarded)

