"""CLI command modules for rclone-scheduler.

Command groups are registered on the main Typer app in
``rclone_scheduler.main``.
"""
