"""
Cancellable delayed callbacks.

Delayed event activation and phase-entry pacing go through a Scheduler
rather than raw platform timers, so a queue entry can cancel its own
timer and tests can drive time by hand.

Implementations:
- SimulatedScheduler: manual clock (tests, headless runner)
- AsyncioScheduler: loop.call_later on the running event loop (API server)
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class ScheduledTask:
    """A callback due at some point in the future. Fires at most once."""

    def __init__(
        self,
        due_at_ms: float,
        callback: Callable[[], None],
        on_cancel: Callable[[], None] | None = None,
    ):
        self.due_at_ms = due_at_ms
        self._callback = callback
        self._on_cancel = on_cancel
        self.cancelled = False
        self.fired = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> bool:
        """Cancel if still pending. Returns True if this call cancelled it."""
        if not self.pending:
            return False
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()
        return True

    def fire(self) -> None:
        if not self.pending:
            return
        self.fired = True
        try:
            self._callback()
        except Exception:
            logger.exception("Scheduled callback failed")


@runtime_checkable
class Scheduler(Protocol):
    def schedule(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledTask:
        """Run callback after delay_ms milliseconds."""
        ...


class SimulatedScheduler:
    """
    Scheduler on a manual clock.

    Nothing fires until advance() or run_all() is called. Tasks fire in
    due-time order; ties fire in the order they were scheduled.
    """

    def __init__(self, start_ms: float = 0):
        self.now_ms = start_ms
        self._tasks: list[tuple[float, int, ScheduledTask]] = []
        self._seq = itertools.count()

    def schedule(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ScheduledTask(self.now_ms + max(delay_ms, 0), callback)
        self._tasks.append((task.due_at_ms, next(self._seq), task))
        return task

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, task in self._tasks if task.pending)

    def _next_due(self, until_ms: float | None) -> ScheduledTask | None:
        self._tasks = [entry for entry in self._tasks if entry[2].pending]
        candidates = [e for e in self._tasks if until_ms is None or e[0] <= until_ms]
        if not candidates:
            return None
        entry = min(candidates, key=lambda e: (e[0], e[1]))
        self._tasks.remove(entry)
        return entry[2]

    def advance(self, ms: float) -> int:
        """
        Move the clock forward, firing everything that comes due.

        Tasks scheduled by callbacks fire too if they fall inside the window.

        Returns:
            Number of tasks fired
        """
        target = self.now_ms + ms
        fired = 0
        while (task := self._next_due(target)) is not None:
            self.now_ms = max(self.now_ms, task.due_at_ms)
            task.fire()
            fired += 1
        self.now_ms = target
        return fired

    def run_all(self) -> int:
        """Fire every pending task, advancing the clock as far as needed."""
        fired = 0
        while (task := self._next_due(None)) is not None:
            self.now_ms = max(self.now_ms, task.due_at_ms)
            task.fire()
            fired += 1
        return fired


class AsyncioScheduler:
    """
    Scheduler backed by the asyncio event loop.

    Must be used from code running on the loop (e.g. async request handlers),
    which keeps every callback on the same thread as the rest of the core.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def schedule(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledTask:
        loop = self._loop or asyncio.get_running_loop()
        task = ScheduledTask(loop.time() * 1000 + delay_ms, callback)
        handle = loop.call_later(max(delay_ms, 0) / 1000, task.fire)
        task._on_cancel = handle.cancel
        return task
