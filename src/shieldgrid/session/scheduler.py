"""Cooperative repeating tasks.

Nothing runs in the background: the session's main loop calls
:meth:`Scheduler.run_pending` and every due task runs synchronously on that
call stack. Time comes from the injected clock, so tests drive the
schedule with a :class:`~shieldgrid.clock.ManualClock`.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from shieldgrid.clock import Clock, SystemClock

__all__ = ['Scheduler', 'ScheduledTask', 'TaskGroup']

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle for one repeating task; :meth:`cancel` is the cancel token."""

    def __init__(self, name: str, interval: timedelta, callback: Callable[[], object],
                 first_due: datetime):
        self.name = name
        self.interval = interval
        self.callback = callback
        self.next_due = first_due
        self.cancelled = False
        self.run_count = 0
        self.error_count = 0

    def cancel(self) -> None:
        self.cancelled = True

    def is_due(self, now: datetime) -> bool:
        return not self.cancelled and now >= self.next_due

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else f"next={self.next_due.isoformat()}"
        return f"ScheduledTask({self.name!r}, every={self.interval}, {state})"


class TaskGroup:
    """Tasks owned together and canceled together."""

    def __init__(self):
        self._tasks: List[ScheduledTask] = []

    def add(self, task: ScheduledTask) -> ScheduledTask:
        self._tasks.append(task)
        return task

    def cancel(self) -> None:
        for task in self._tasks:
            task.cancel()

    @property
    def active(self) -> List[ScheduledTask]:
        return [t for t in self._tasks if not t.cancelled]

    def __iter__(self):
        return iter(list(self._tasks))

    def __len__(self) -> int:
        return len(self._tasks)


class Scheduler:
    """Runs due tasks when polled.

    A task that falls more than one interval behind runs once and is
    rescheduled from "now"; missed runs are not replayed in a burst.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self._tasks: List[ScheduledTask] = []

    def every(self, interval_ms: int, callback: Callable[[], object],
              name: Optional[str] = None, group: Optional[TaskGroup] = None,
              run_immediately: bool = False) -> ScheduledTask:
        """Schedule ``callback`` every ``interval_ms`` milliseconds.

        Parameters
        ----------
        interval_ms : int
            Period in milliseconds, must be positive.
        callback : callable
            Called with no arguments.
        name : str, optional
            Label used in logs. Defaults to the callback's name.
        group : TaskGroup, optional
            Group the task joins.
        run_immediately : bool
            First run on the next poll instead of one interval from now.
        """
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        interval = timedelta(milliseconds=interval_ms)
        now = self.clock.now()
        task = ScheduledTask(
            name or getattr(callback, "__name__", "task"),
            interval,
            callback,
            now if run_immediately else now + interval,
        )
        self._tasks.append(task)
        if group is not None:
            group.add(task)
        logger.debug("Scheduled %s every %d ms", task.name, interval_ms)
        return task

    def run_pending(self) -> int:
        """Run every due task once. Returns the number of tasks run."""
        now = self.clock.now()
        ran = 0
        for task in list(self._tasks):
            if not task.is_due(now):
                continue
            try:
                task.callback()
            except Exception:
                task.error_count += 1
                logger.exception("Scheduled task %s failed", task.name)
            task.run_count += 1
            ran += 1
            task.next_due += task.interval
            if task.next_due <= now:
                task.next_due = now + task.interval
        self._tasks = [t for t in self._tasks if not t.cancelled]
        return ran

    def time_until_next(self) -> Optional[timedelta]:
        """Time until the earliest active task is due (zero if overdue)."""
        active = [t.next_due for t in self._tasks if not t.cancelled]
        if not active:
            return None
        return max(timedelta(0), min(active) - self.clock.now())

    def cancel_all(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks = []

    @property
    def tasks(self) -> List[ScheduledTask]:
        return [t for t in self._tasks if not t.cancelled]
