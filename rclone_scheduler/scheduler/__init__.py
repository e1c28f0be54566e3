"""Job registry, executor and cron scheduler.

Jobs are loaded once from configuration; the scheduler fires them on
their cron schedules and the executor runs them, one run per job at a
time.
"""

from rclone_scheduler.scheduler.job_executor import (
    JobExecutor,
    RunOutcome,
    TriggerResult,
)
from rclone_scheduler.scheduler.job_scheduler import CronSchedule, JobScheduler
from rclone_scheduler.scheduler.registry import (
    JobDefinition,
    JobRegistry,
    ShellCommand,
    SyncCommand,
)
from rclone_scheduler.scheduler.state import SchedulerState, build_state

__all__ = [
    "CronSchedule",
    "JobDefinition",
    "JobExecutor",
    "JobRegistry",
    "JobScheduler",
    "RunOutcome",
    "SchedulerState",
    "ShellCommand",
    "SyncCommand",
    "TriggerResult",
    "build_state",
]
