from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from licensing.engine import LicensingEngine

logger = logging.getLogger(__name__)


@dataclass
class RevalidateStats:
    started_at: str
    completed_at: Optional[str] = None
    revalidated: bool = False
    status: Optional[str] = None
    tasks_executed: int = 0
    tasks_failed: int = 0
    errors: int = 0


def run_revalidation_cycle(engine: Optional[LicensingEngine] = None) -> RevalidateStats:
    """Out-of-band license maintenance.

    Responsibilities:
    - revalidate a configured license whose cached result has lapsed
    - drain due scheduler tasks (deferred checks, daily revalidation and
      daily runtime check)
    """

    eng = engine or LicensingEngine()
    stats = RevalidateStats(started_at=datetime.now(timezone.utc).isoformat())

    try:
        result = eng.scheduled_revalidate()
        if result is not None:
            stats.revalidated = True
            stats.status = result.status
    except Exception:
        logger.exception("Scheduled license revalidation failed")
        stats.errors += 1

    report = eng.scheduler.run_due()
    stats.tasks_executed = len(report.executed)
    stats.tasks_failed = len(report.failed)

    stats.completed_at = datetime.now(timezone.utc).isoformat()
    return stats


def run_forever(interval_seconds: int = 3600) -> None:
    import time

    engine = LicensingEngine()
    while True:
        run_revalidation_cycle(engine)
        time.sleep(interval_seconds)
