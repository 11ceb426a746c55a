"""
In-process task scheduler for out-of-band license work.

Two kinds of work are tracked:
- recurring jobs (e.g. daily revalidation) with an interval and a next-run time
- one-shot tasks (e.g. "validate in 30 seconds") keyed by name so the same
  task is never queued twice

Nothing runs on its own: a ticker (workers/license_revalidate_job.py or the
host application's own loop) calls run_due() periodically.
"""

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class RecurringJob:
    name: str
    interval: timedelta
    func: Callable[[], None]
    next_run_at: datetime


@dataclass
class RunReport:
    """Names of the tasks executed or failed during one run_due() call."""

    executed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class TaskScheduler:
    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._queue: List[Tuple[datetime, int, str]] = []
        self._pending: Dict[str, Tuple[datetime, Callable[[], None]]] = {}
        self._recurring: Dict[str, RecurringJob] = {}
        self._counter = itertools.count()

    def schedule_once(self, name: str, func: Callable[[], None], delay_seconds: float = 0) -> bool:
        """Queue a one-shot task. Returns False when a task with that name is already pending."""
        if name in self._pending:
            return False
        run_at = self._clock() + timedelta(seconds=delay_seconds)
        self._pending[name] = (run_at, func)
        heapq.heappush(self._queue, (run_at, next(self._counter), name))
        logger.debug("Task scheduled", extra={"task": name, "run_at": run_at.isoformat()})
        return True

    def is_scheduled(self, name: str) -> bool:
        return name in self._pending or name in self._recurring

    def schedule_recurring(
        self,
        name: str,
        func: Callable[[], None],
        interval: timedelta,
        first_run_at: Optional[datetime] = None,
    ) -> None:
        self._recurring[name] = RecurringJob(
            name=name,
            interval=interval,
            func=func,
            next_run_at=first_run_at or self._clock() + interval,
        )

    def cancel(self, name: str) -> None:
        self._pending.pop(name, None)
        self._recurring.pop(name, None)

    def pending(self) -> List[str]:
        return sorted(self._pending)

    def run_due(self) -> RunReport:
        """Execute every task whose time has come. Task failures are logged and isolated."""
        now = self._clock()
        report = RunReport()

        while self._queue and self._queue[0][0] <= now:
            run_at, _, name = heapq.heappop(self._queue)
            scheduled = self._pending.get(name)
            if scheduled is None or scheduled[0] != run_at:
                continue  # cancelled or rescheduled
            del self._pending[name]
            self._run(name, scheduled[1], report)

        for job in list(self._recurring.values()):
            if job.next_run_at <= now:
                job.next_run_at = now + job.interval
                self._run(job.name, job.func, report)

        return report

    @staticmethod
    def _run(name: str, func: Callable[[], None], report: RunReport) -> None:
        try:
            func()
            report.executed.append(name)
        except Exception:
            logger.exception("Scheduled task failed", extra={"task": name})
            report.failed.append(name)
