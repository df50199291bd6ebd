"""
Exercise timing.

- ExerciseTimer: monotonic stopwatch for the exercise on screen
- ScheduledTask: one cancelable timeout
- ThreadingTimeoutScheduler: fires tasks from a daemon timer thread
- ManualTimeoutScheduler: fires tasks when advance() moves its clock
  (simulations and tests)

A scheduler keeps at most one live task: scheduling a new one cancels the
previous, so a timeout armed for an earlier exercise can never fire.
"""

from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Callable
from typing import Protocol

from loguru import logger

_task_ids = itertools.count(1)


class ExerciseTimer:
    """Stopwatch started when an exercise is shown."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._started_at: float | None = None

    def start(self) -> None:
        self._started_at = self._clock()

    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return max(0.0, self._clock() - self._started_at)

    def stop(self, limit: float | None = None) -> float:
        """Stop and return the elapsed seconds, capped at limit when given."""
        elapsed = self.elapsed()
        self._started_at = None
        return min(elapsed, limit) if limit is not None else elapsed


class ScheduledTask:
    """A timeout that runs its callback once unless cancelled first."""

    def __init__(self, delay: float, callback: Callable[["ScheduledTask"], None], label: str | None = None):
        self.task_id = next(_task_ids)
        self.delay = delay
        self.label = label
        self._callback = callback
        self._lock = threading.Lock()
        self._done = False
        self.cancelled = False

    def cancel(self) -> bool:
        """Cancel the task. Returns False if it already fired."""
        with self._lock:
            if self._done:
                return False
            self._done = True
            self.cancelled = True
            return True

    def fire(self) -> bool:
        """Run the callback unless cancelled or already fired."""
        with self._lock:
            if self._done:
                return False
            self._done = True
        self._callback(self)
        return True

    @property
    def pending(self) -> bool:
        return not self._done


class TimeoutScheduler(Protocol):
    """Protocol for schedulers owned by the drill engine."""

    def schedule(
        self, delay: float, callback: Callable[[ScheduledTask], None], label: str | None = None
    ) -> ScheduledTask:
        """Schedule callback after delay seconds, cancelling any previous task."""
        ...

    def cancel(self) -> None:
        """Cancel the live task, if any."""
        ...


class ThreadingTimeoutScheduler:
    """Runs each task on a daemon threading.Timer."""

    def __init__(self) -> None:
        self._task: ScheduledTask | None = None
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    def schedule(
        self, delay: float, callback: Callable[[ScheduledTask], None], label: str | None = None
    ) -> ScheduledTask:
        task = ScheduledTask(delay, callback, label)
        with self._lock:
            self._cancel_locked()
            timer = threading.Timer(delay, task.fire)
            timer.daemon = True
            timer.name = f"timestables-timeout-{task.task_id}"
            self._task = task
            self._timer = timer
            timer.start()
        logger.debug("Scheduled timeout #{} for {} in {}s", task.task_id, label, delay)
        return task

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        if self._task is not None:
            self._task.cancel()
        if self._timer is not None:
            self._timer.cancel()
        self._task = None
        self._timer = None


class ManualTimeoutScheduler:
    """Scheduler driven by an explicit clock."""

    def __init__(self) -> None:
        self.now = 0.0
        self._task: ScheduledTask | None = None
        self._due_at = 0.0
        self.scheduled: list[ScheduledTask] = []

    @property
    def task(self) -> ScheduledTask | None:
        return self._task

    def schedule(
        self, delay: float, callback: Callable[[ScheduledTask], None], label: str | None = None
    ) -> ScheduledTask:
        self.cancel()
        task = ScheduledTask(delay, callback, label)
        self._task = task
        self._due_at = self.now + delay
        self.scheduled.append(task)
        return task

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
        self._task = None

    def advance(self, seconds: float) -> bool:
        """Move the clock forward; fire the live task if it became due."""
        self.now += seconds
        task = self._task
        if task is not None and task.pending and self.now >= self._due_at:
            self._task = None
            return task.fire()
        return False
