"""
Scheduler infrastructure for running watch jobs on cron schedules.
"""

import logging
import re
from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.interval import IntervalTrigger
from croniter import croniter

from sitewatch.util import parse_duration


logger = logging.getLogger(__name__)

MACROS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

_TZ_PREFIX_RE = re.compile(r"^(?:CRON_TZ|TZ)=(\S+)\s+(.+)$")


def split_schedule(expression: str) -> Tuple[Optional[str], str]:
    """Split an optional ``CRON_TZ=<zone>`` prefix off a schedule expression."""
    expression = expression.strip()
    match = _TZ_PREFIX_RE.match(expression)
    if match:
        return match.group(1), match.group(2).strip()
    return None, expression


class CronTabTrigger(BaseTrigger):
    """Trigger firing on a standard five-field crontab line.

    Unlike APScheduler's ``CronTrigger``, a restricted day-of-month and a
    restricted day-of-week are OR-ed (``0 0 1 * 1`` fires on the 1st and on
    every Monday), and weekdays count from Sunday (``0`` and ``7``).
    """

    def __init__(self, spec: str, timezone: tzinfo):
        self.spec = spec
        self.timezone = timezone

    def get_next_fire_time(self, previous_fire_time: Optional[datetime], now: datetime) -> datetime:
        start = (previous_fire_time or now).astimezone(self.timezone)
        return croniter(self.spec, start, day_or=True).get_next(datetime)

    def __str__(self) -> str:
        return f"crontab[{self.spec}]"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} ({self.spec!r}, timezone='{self.timezone}')>"


def validate_schedule(expression: str) -> None:
    """Raise ValueError when *expression* is not a usable schedule."""
    zone, spec = split_schedule(expression)
    if zone is not None:
        try:
            ZoneInfo(zone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone {zone!r} in schedule") from e

    if spec.startswith("@every"):
        interval = parse_duration(spec[len("@every"):].strip())
        if interval.total_seconds() <= 0:
            raise ValueError(f"@every needs a positive duration: {expression!r}")
        return

    spec = MACROS.get(spec, spec)
    if len(spec.split()) != 5:
        raise ValueError("Cron expression must have 5 parts: minute hour day month day_of_week")
    try:
        croniter(spec)
    except Exception as e:
        raise ValueError(f"Invalid cron expression '{expression}': {e}") from e


def build_trigger(expression: str, default_timezone: str = "UTC") -> BaseTrigger:
    """Build an APScheduler trigger from a cron, macro or ``@every`` expression."""
    validate_schedule(expression)
    zone, spec = split_schedule(expression)
    timezone = zone or default_timezone

    if spec.startswith("@every"):
        interval = parse_duration(spec[len("@every"):].strip())
        return IntervalTrigger(seconds=interval.total_seconds(), timezone=timezone)

    return CronTabTrigger(MACROS.get(spec, spec), ZoneInfo(timezone))


class Scheduler:
    """Async job scheduler wrapper around APScheduler.

    Jobs live in memory only: the configuration file is the source of truth
    and a restart rebuilds every job from it.
    """

    def __init__(self, timezone: str = "UTC"):
        job_defaults = {
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': 60  # seconds
        }

        self.timezone = timezone
        self._scheduler = AsyncIOScheduler(job_defaults=job_defaults, timezone=timezone)
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start the scheduler."""
        if not self._started:
            self._scheduler.start()
            self._started = True
            logger.info(f"Scheduler started (timezone {self.timezone})")

    async def stop(self) -> None:
        """Stop issuing triggers. Running jobs are not waited for."""
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("Scheduler stopped")

    def add_job(
        self,
        func: Callable,
        schedule: str,
        job_id: str,
        args: Sequence[Any] = (),
        name: Optional[str] = None,
    ) -> None:
        """Add a job firing on *schedule* (cron, macro or ``@every``)."""
        trigger = build_trigger(schedule, self.timezone)

        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            name=name or job_id,
            args=list(args),
            replace_existing=True,
        )

        logger.info(f"Added job: {name or job_id} ({schedule})")

    def remove_job(self, job_id: str) -> None:
        """Remove a job by ID."""
        self._scheduler.remove_job(job_id)
        logger.info(f"Removed job: {job_id}")

    def list_jobs(self) -> Dict[str, Any]:
        """List all scheduled jobs."""
        jobs = {}
        for job in self._scheduler.get_jobs():
            jobs[job.id] = {
                "name": job.name,
                "next_run": getattr(job, "next_run_time", None),
                "trigger": str(job.trigger),
            }
        return jobs
