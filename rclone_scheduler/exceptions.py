"""Exceptions raised by the scheduler core.

Every error carries the exit code the CLI should use when it terminates
the process because of it. Only ``ConfigError`` is expected to do so at
runtime; everything else is handled where it happens.
"""

from typing import Any

from rclone_scheduler.cli.exit_codes import ExitCode


class SchedulerError(Exception):
    """Base exception for rclone-scheduler.

    Attributes:
        message: Error message
        exit_code: Exit code to use when exiting
        details: Optional dictionary of additional error details
    """

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigError(SchedulerError):
    """Invalid configuration.

    Raised for a malformed job spec, an unparseable cron schedule or an
    unreadable configuration file. Fatal at startup.
    """

    exit_code = ExitCode.CONFIGURATION_ERROR


class JobNotFoundError(SchedulerError):
    """No job is registered at the requested index."""

    exit_code = ExitCode.NOT_FOUND

    def __init__(self, index: int, count: int) -> None:
        super().__init__(
            f"No job at index {index}",
            details={"registered_jobs": count},
        )
        self.index = index
