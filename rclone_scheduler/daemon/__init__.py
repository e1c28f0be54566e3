"""Service lifecycle for rclone-scheduler.

Runs the cron scheduler and the control API in one event loop until a
shutdown signal is received.
"""

from rclone_scheduler.daemon.service import SchedulerService, run_service

__all__ = [
    "SchedulerService",
    "run_service",
]
