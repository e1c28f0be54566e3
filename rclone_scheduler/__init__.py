"""rclone-scheduler - cron scheduling and a control API for backup jobs."""

__app_name__ = "rclone-scheduler"
__version__ = "0.1.0"
