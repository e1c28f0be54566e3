"""Cron scheduler for configured jobs.

The JobScheduler turns every job with a ``schedule`` into an APScheduler
job whose trigger is a ``CronSchedule``. At each fire instant it asks the
executor to start a run; if the previous run is still going the tick is
dropped, never queued or made up later.

All schedules are parsed when the scheduler is constructed, so a bad cron
expression stops startup before anything is running.
"""

import logging
from datetime import datetime, tzinfo
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from croniter import croniter
from tzlocal import get_localzone

from rclone_scheduler.config import SchedulerConfig
from rclone_scheduler.exceptions import ConfigError
from rclone_scheduler.scheduler.job_executor import JobExecutor, TriggerResult
from rclone_scheduler.scheduler.registry import JobRegistry

logger = logging.getLogger(__name__)

SHORTHANDS = (
    "@yearly",
    "@annually",
    "@monthly",
    "@weekly",
    "@daily",
    "@midnight",
    "@hourly",
)


class CronSchedule(BaseTrigger):
    """APScheduler trigger computing fire times from a cron expression.

    Supports 5-part (minute hour day month weekday) and 6-part
    (minute hour day month weekday second) expressions with standard cron
    day-of-week numbering (0 or 7 is Sunday), and the ``@daily`` style
    shorthands.

    Raises:
        ValueError: If the expression cannot be parsed
    """

    def __init__(self, expression: str, timezone: tzinfo) -> None:
        expression = " ".join(expression.split())
        if not expression.startswith("@"):
            fields = len(expression.split())
            if fields not in (5, 6):
                raise ValueError(
                    f"expected 5 or 6 fields (minute hour day month weekday [second]), got {fields}"
                )
        elif expression.lower() in SHORTHANDS:
            expression = expression.lower()
        else:
            raise ValueError(f"unknown shorthand '{expression}'")

        self.expression = expression
        self.timezone = timezone

        # Fails on bad field values, and on dates that never occur (Feb 30)
        self.get_next_fire_time(None, datetime.now(timezone))

    def get_next_fire_time(
        self,
        previous_fire_time: Optional[datetime],
        now: datetime,
    ) -> Optional[datetime]:
        base = previous_fire_time or now
        return croniter(self.expression, base.astimezone(self.timezone)).get_next(datetime)

    def __str__(self) -> str:
        return f"cron[{self.expression}]"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} ({self.expression!r}, timezone='{self.timezone}')>"


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Resolve a configured zone name, defaulting to the host's zone."""
    if not name:
        return get_localzone()
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown timezone: {name!r}") from e


class JobScheduler:
    """Fires executor triggers on each job's cron schedule.

    Example:
        scheduler = JobScheduler(registry, executor, config.scheduler)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        registry: JobRegistry,
        executor: JobExecutor,
        config: Optional[SchedulerConfig] = None,
    ) -> None:
        """Initialize the scheduler and parse every job's schedule.

        Args:
            registry: Registry of configured jobs
            executor: Executor used to start runs
            config: Scheduler configuration

        Raises:
            ConfigError: If a timezone or any job's schedule is invalid
        """
        self._registry = registry
        self._executor = executor
        self._config = config or SchedulerConfig()
        self._timezone = resolve_timezone(self._config.timezone)
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._handles: Dict[int, CronSchedule] = {}

        for job in registry.scheduled_jobs:
            try:
                self._handles[job.index] = CronSchedule(job.schedule, self._timezone)
            except ValueError as e:
                raise ConfigError(
                    f"Invalid schedule for job '{job.display_name}' (index {job.index}): {e}",
                    details={"schedule": job.schedule},
                ) from e

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

    @property
    def timezone(self) -> tzinfo:
        return self._timezone

    @property
    def scheduled_indices(self) -> List[int]:
        return sorted(self._handles)

    async def start(self) -> None:
        """Start firing scheduled jobs.

        Must be awaited from the event loop that hosts the executor.
        """
        if self._running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting job scheduler...")

        self._scheduler = self._create_scheduler()
        self._setup_listeners()

        # Start first: next_run_time is only available once started
        self._scheduler.start()

        for index, handle in self._handles.items():
            job = self._registry.get(index)
            aps_job = self._scheduler.add_job(
                func=self._fire,
                trigger=handle,
                id=f"job-{index}",
                name=job.display_name,
                args=[index],
                replace_existing=True,
            )
            logger.info(
                f"Scheduled job {job.display_name} '{job.schedule}', next run {aps_job.next_run_time}"
            )

        self._running = True
        logger.info(
            f"Scheduler started with {len(self._handles)} of {len(self._registry)} jobs scheduled"
        )

    async def stop(self) -> None:
        """Stop the scheduler. Runs already in flight are not affected."""
        if not self._running:
            return

        logger.info("Stopping job scheduler...")
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("Scheduler stopped")

    def _create_scheduler(self) -> AsyncIOScheduler:
        """Create and configure APScheduler instance."""
        jobstores = {"default": MemoryJobStore()}

        executors = {"default": AsyncIOExecutor()}

        job_defaults = {
            "coalesce": True,  # Collapse missed ticks into one
            "max_instances": 1,
            "misfire_grace_time": self._config.misfire_grace_time,
        }

        return AsyncIOScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone=self._timezone,
        )

    def _setup_listeners(self) -> None:
        """Set up APScheduler event listeners."""
        if not self._scheduler:
            return

        def on_job_error(event: Any) -> None:
            exception = getattr(event, "exception", "Unknown error")
            logger.error(f"Scheduled trigger {event.job_id} failed: {exception}")

        def on_job_missed(event: Any) -> None:
            logger.warning(f"Scheduled trigger {event.job_id} missed its run time")

        self._scheduler.add_listener(on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(on_job_missed, EVENT_JOB_MISSED)

    async def _fire(self, index: int) -> None:
        """Callback invoked by APScheduler at each fire instant."""
        job = self._registry.get(index)
        result = self._executor.trigger(index)
        if result is TriggerResult.BUSY:
            logger.info(
                f"Skipping scheduled run of {job.display_name}: previous run still in progress"
            )
        else:
            logger.info(f"Triggered scheduled run of {job.display_name}")

    def next_fire_time(self, index: int) -> Optional[datetime]:
        """Next time a job will fire, or None for manual-only jobs."""
        handle = self._handles.get(index)
        if handle is None:
            return None
        if self._scheduler:
            aps_job = self._scheduler.get_job(f"job-{index}")
            if aps_job is not None:
                return aps_job.next_run_time
        return handle.get_next_fire_time(None, datetime.now(self._timezone))

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status.

        Returns:
            Dictionary with scheduler status information
        """
        jobs: List[Dict[str, Any]] = []
        for index in self.scheduled_indices:
            job = self._registry.get(index)
            next_run = self.next_fire_time(index)
            jobs.append(
                {
                    "index": index,
                    "name": job.display_name,
                    "schedule": job.schedule,
                    "next_run": next_run.isoformat() if next_run else None,
                }
            )

        return {
            "running": self._running,
            "timezone": str(self._timezone),
            "total_jobs": len(self._registry),
            "scheduled_jobs": len(self._handles),
            "jobs": jobs,
        }
