"""HTTP control API and dashboard for rclone-scheduler."""

from rclone_scheduler.api.app import JobSummary, create_app

__all__ = [
    "JobSummary",
    "create_app",
]
