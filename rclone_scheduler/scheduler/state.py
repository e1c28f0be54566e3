"""Owner object for the scheduler core.

``SchedulerState`` is built once at startup and handed to the control API
and the daemon. Building it validates every job and every schedule, so a
bad configuration fails here, before anything is started or bound.
"""

from dataclasses import dataclass
from typing import Optional

from rclone_scheduler.config import AppConfig
from rclone_scheduler.scheduler.job_executor import JobExecutor
from rclone_scheduler.scheduler.job_scheduler import JobScheduler
from rclone_scheduler.scheduler.registry import JobRegistry


@dataclass
class SchedulerState:
    """Registry, executor and scheduler wired together.

    Attributes:
        registry: Immutable job registry
        executor: Single entry point for starting runs
        scheduler: Cron scheduler (may be None when only the API is needed)
    """

    registry: JobRegistry
    executor: JobExecutor
    scheduler: Optional[JobScheduler] = None


def build_state(config: AppConfig, with_scheduler: bool = True) -> SchedulerState:
    """Build the scheduler state from configuration.

    Raises:
        ConfigError: If any job spec or schedule is invalid
    """
    registry = JobRegistry.load(config.jobs)
    executor = JobExecutor(registry, config.executor)
    scheduler = None
    if with_scheduler:
        scheduler = JobScheduler(registry, executor, config.scheduler)
    return SchedulerState(registry=registry, executor=executor, scheduler=scheduler)
