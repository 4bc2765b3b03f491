"""Time source and cancellable deferred callbacks.

Every component reads time from, and schedules work on, a single
``Scheduler`` so tick timestamps and note timestamps never skew against each
other.  Two implementations are provided:

``AsyncioScheduler``
    Backed by the running event loop (``loop.time()`` / ``loop.call_later``).
    Used by the live WebSocket session.
``ManualScheduler``
    A deterministic fake clock that only moves when ``advance()`` is called.
    Used by the tests and the offline duel simulator.

All times are milliseconds.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, Protocol


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Handle: ...


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self._loop.time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(max(0.0, delay_ms) / 1000.0, callback)


class ManualHandle:
    """Handle returned by ``ManualScheduler.call_later``."""

    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic scheduler whose clock only moves on ``advance()``.

    Callbacks due at the same instant run in the order they were scheduled.
    A callback that schedules another callback inside the advanced window
    sees it run during the same ``advance()`` call.
    """

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = start_ms
        self._queue: list[tuple[float, int, ManualHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(self._now + max(0.0, delay_ms), callback)
        heapq.heappush(self._queue, (handle.due, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) callbacks."""
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, ms: float) -> None:
        """Move the clock forward by *ms*, firing every callback that falls due."""
        self.advance_to(self._now + ms)

    def advance_to(self, target_ms: float) -> None:
        if target_ms < self._now:
            raise ValueError("ManualScheduler cannot move backwards")
        while self._queue and self._queue[0][0] <= target_ms:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = due
            handle.callback()
        self._now = target_ms
