from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Callable

from seclog.core.ticker import Ticker
from seclog.core.time import next_local_midnight, utc_now, utc_now_rfc3339
from seclog.services.opensearch.index import RETENTION_DAYS, IndexRouter, partition_name, today_local

_LOGGER = logging.getLogger(__name__)


def seconds_until_midnight(now: datetime, tz: tzinfo | None = None) -> float:
    return max(0.0, (next_local_midnight(now, tz) - now).total_seconds())


@dataclass
class LifecycleReport:
    created: str | None = None
    deleted: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def run_lifecycle_once(
    router: IndexRouter,
    today: date | None = None,
    retention_days: int = RETENTION_DAYS,
) -> LifecycleReport:
    """
    Pre-create tomorrow's partition, then prune expired ones.

    Both steps are idempotent and nothing is checkpointed. If a run fails
    part-way, the next run repeats both steps.
    """
    if today is None:
        today = today_local(router.tz)
    report = LifecycleReport()

    tomorrow = partition_name(today + timedelta(days=1))
    try:
        router.ensure_partition(tomorrow)
        report.created = tomorrow
    except Exception as exc:
        _LOGGER.exception("pre-create partition %s failed", tomorrow)
        report.errors.append(f"ensure {tomorrow}: {exc}")

    try:
        report.deleted = router.prune_expired(retention_days, today=today)
    except Exception as exc:
        _LOGGER.exception("retention pruning failed")
        report.errors.append(f"prune: {exc}")

    return report


class LifecycleScheduler:
    """Runs :func:`run_lifecycle_once` at every local midnight."""

    def __init__(self, state: Any, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.state = state
        self.clock = clock

    def _delay(self) -> float:
        return seconds_until_midnight(self.clock(), self.state.partition_tz)

    async def run_now(self) -> LifecycleReport:
        router = self.state.get_router()
        report = await asyncio.to_thread(run_lifecycle_once, router)
        stats = self.state.stats
        stats.lifecycle_runs += 1
        stats.last_lifecycle_at = utc_now_rfc3339()
        if report.errors:
            stats.lifecycle_errors += 1
            stats.last_error = "; ".join(report.errors)
        _LOGGER.info(
            "lifecycle run: created=%s deleted=%s errors=%s",
            report.created,
            len(report.deleted),
            len(report.errors),
        )
        return report

    async def run(self) -> None:
        _LOGGER.info("lifecycle scheduler started, next run in %.0f minutes", self._delay() / 60)
        async for _ in Ticker(self._delay, self.state.stop_event):
            await self.run_now()
        _LOGGER.info("lifecycle scheduler stopped")
