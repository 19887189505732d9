"""
Throttled flushing of streamed text.

ThrottledFlusher accumulates fragments and hands the full accumulated text to
a sink at most once per window, with leading and trailing emission. Time is
read through a clock so the policy can be driven without real timers.
"""

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    def monotonic(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopClock:
    """Clock backed by the running asyncio event loop."""

    def monotonic(self) -> float:
        return asyncio.get_running_loop().time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class _ManualTimer:
    def __init__(self, deadline: float, callback: Callable[[], None]):
        self.deadline = deadline
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Virtual clock; timers fire only when advance() moves past their deadline."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._timers: list[tuple[float, int, _ManualTimer]] = []
        self._seq = itertools.count()

    def monotonic(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(self._now + max(delay, 0.0), callback)
        heapq.heappush(self._timers, (timer.deadline, next(self._seq), timer))
        return timer

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._timers and self._timers[0][0] <= target:
            deadline, _, timer = heapq.heappop(self._timers)
            self._now = max(self._now, deadline)
            if not timer.cancelled:
                timer.callback()
        self._now = target

    @property
    def pending(self) -> int:
        return sum(1 for _, _, timer in self._timers if not timer.cancelled)


class ThrottledFlusher:
    """
    Leading + trailing throttle over an append-only text accumulator.

    The sink always receives the complete text accumulated so far, so every
    emission extends the previous one.
    """

    def __init__(
        self,
        sink: Callable[[str], None],
        window: float = 0.1,
        *,
        leading: bool = True,
        trailing: bool = True,
        clock: Clock | None = None,
    ):
        if window <= 0:
            raise ValueError("window must be positive")
        self._sink = sink
        self.window = window
        self.leading = leading
        self.trailing = trailing
        self._clock = clock or LoopClock()
        self._flushed = ""
        self._buffer = ""
        self._last_emit: float | None = None
        self._timer: TimerHandle | None = None
        self._stopped = False

    @property
    def text(self) -> str:
        """Everything pushed so far, flushed or not."""
        return self._flushed + self._buffer

    @property
    def flushed_text(self) -> str:
        return self._flushed

    def push(self, fragment: str) -> None:
        if self._stopped or not fragment:
            return
        self._buffer += fragment
        if self._timer is not None:
            return

        now = self._clock.monotonic()
        idle = self._last_emit is None or now - self._last_emit >= self.window
        if idle and self.leading:
            self._emit(now)
            return
        if self.trailing:
            delay = self.window if self._last_emit is None or idle else self._last_emit + self.window - now
            self._timer = self._clock.call_later(delay, self._on_window_end)

    def flush(self) -> None:
        """Emit any buffered text immediately, regardless of window state."""
        self._cancel_timer()
        if self._buffer:
            self._emit(self._clock.monotonic())

    def stop(self) -> None:
        """Cancel the pending trailing emission and ignore further pushes."""
        self._cancel_timer()
        self._stopped = True

    def _on_window_end(self) -> None:
        self._timer = None
        if self._buffer and not self._stopped:
            self._emit(self._clock.monotonic())

    def _emit(self, now: float) -> None:
        self._flushed += self._buffer
        self._buffer = ""
        self._last_emit = now
        self._sink(self._flushed)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
