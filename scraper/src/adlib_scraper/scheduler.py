"""Cron-driven scheduling of the scrape, analysis and cleanup runs.

The :class:`JobRegistry` maps a job name to its crontab expression and the
coroutine function that performs one run. :class:`JobScheduler` installs a
``CronTrigger`` per registered job on an ``AsyncIOScheduler``. Each firing is
wrapped so that:

* a firing while the same job is still running is skipped
  (``job_overlap_skipped``);
* an exception escaping the run is logged (``job_run_failed``) and never
  reaches the scheduler.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import DEFAULT_TIMEZONE
from .errors import JobError
from .logging import jlog, joblog, logging_context
from .models import utcnow

SCRAPING = "scraping"
ANALYSIS = "analysis"
CLEANUP = "cleanup"

DEFAULT_SCHEDULES = {
    SCRAPING: "0 */2 * * *",
    ANALYSIS: "*/30 * * * *",
    CLEANUP: "0 2 * * *",
}

RunFunc = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class JobSpec:
    name: str
    schedule: str
    func: RunFunc


class JobRegistry:
    """Named jobs known to a scheduler."""

    def __init__(self) -> None:
        self._jobs: dict[str, JobSpec] = {}

    def register(self, name: str, schedule: str, func: RunFunc) -> JobSpec:
        try:
            CronTrigger.from_crontab(schedule)
        except ValueError as exc:
            raise JobError(f"invalid schedule {schedule!r} for job {name!r}: {exc}") from exc
        spec = JobSpec(name=name, schedule=schedule, func=func)
        self._jobs[name] = spec
        joblog("job_registered", job_name=name, schedule=schedule)
        return spec

    def get(self, name: str) -> JobSpec:
        try:
            return self._jobs[name]
        except KeyError:
            raise JobError(f"unknown job {name!r}") from None

    def remove(self, name: str) -> None:
        self._jobs.pop(name, None)

    def names(self) -> list[str]:
        return list(self._jobs)

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)


class JobScheduler:
    def __init__(
        self,
        registry: JobRegistry | None = None,
        *,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.registry = registry or JobRegistry()
        self.timezone = timezone
        self._clock = clock
        self._scheduler = AsyncIOScheduler(timezone=timezone)
        self._active: set[str] = set()
        self._running: set[str] = set()

    def trigger_for(self, name: str) -> CronTrigger:
        return CronTrigger.from_crontab(self.registry.get(name).schedule, timezone=self.timezone)

    def start_all(self) -> None:
        """Install a trigger for every registered job and start the scheduler."""

        for name in self.registry.names():
            self._scheduler.add_job(
                self._fire,
                self.trigger_for(name),
                args=[name],
                id=name,
                name=name,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            self._active.add(name)
        if not self._scheduler.running:
            self._scheduler.start()
        jlog("info", event="scheduler_started", jobs=sorted(self._active), timezone=self.timezone)

    def stop_job(self, name: str) -> bool:
        if name not in self._active:
            return False
        if self._scheduler.get_job(name) is not None:
            self._scheduler.remove_job(name)
        self._active.discard(name)
        joblog("job_stopped", job_name=name)
        return True

    def stop_all(self) -> None:
        for name in list(self._active):
            self.stop_job(name)
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        jlog("info", event="scheduler_stopped")

    def status(self) -> dict[str, bool]:
        return {name: name in self._active for name in self.registry.names()}

    def is_running(self, name: str) -> bool:
        return name in self._running

    def next_fire_time(self, name: str, now: datetime | None = None) -> datetime | None:
        """Next trigger time for ``name`` at or after ``now`` (the clock by default)."""

        return self.trigger_for(name).get_next_fire_time(None, now or self._clock())

    async def run_now(self, name: str) -> bool:
        """Run ``name`` immediately; False when it was skipped as an overlap."""

        self.registry.get(name)
        return await self._fire(name)

    async def _fire(self, name: str) -> bool:
        if name in self._running:
            joblog("job_overlap_skipped", job_name=name, level="warning")
            return False
        spec = self.registry.get(name)
        self._running.add(name)
        started = time.monotonic()
        try:
            with logging_context(job_name=name):
                joblog("job_started", job_name=name)
                await spec.func()
                joblog("job_finished", job_name=name, elapsed_s=round(time.monotonic() - started, 3))
        except Exception as exc:
            joblog(
                "job_run_failed",
                job_name=name,
                level="error",
                error_type=type(exc).__name__,
                error=str(exc),
                elapsed_s=round(time.monotonic() - started, 3),
            )
        finally:
            self._running.discard(name)
        return True


__all__ = [
    "ANALYSIS",
    "CLEANUP",
    "DEFAULT_SCHEDULES",
    "JobRegistry",
    "JobScheduler",
    "JobSpec",
    "SCRAPING",
]
