"""Job registry built once from configuration.

Each configured job becomes a ``JobDefinition`` addressed by its position
in the configuration. The registry never changes after it is loaded, so it
can be read from any task or thread without locking.
"""

import logging
import shlex
from dataclasses import dataclass
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from rclone_scheduler.exceptions import ConfigError, JobNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncCommand:
    """Arguments passed to the rclone binary."""

    args: Tuple[str, ...]

    @property
    def command_line(self) -> str:
        return shlex.join(self.args)


@dataclass(frozen=True)
class ShellCommand:
    """A raw command line run through the shell."""

    command: str


JobAction = Union[SyncCommand, ShellCommand]


@dataclass(frozen=True)
class JobDefinition:
    """Definition of a configured job.

    Attributes:
        index: Position of the job in the configuration, the external handle
        name: Human-readable job name (may be empty)
        action: What the job runs
        schedule: Cron expression, or None for manual-only jobs
    """

    index: int
    name: str
    action: JobAction
    schedule: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or f"Job {self.index}"

    @property
    def is_scheduled(self) -> bool:
        return self.schedule is not None


def _job_label(index: int, raw: Any) -> str:
    name = raw.get("name") if isinstance(raw, Mapping) else None
    if name:
        return f"'{name}' (index {index})"
    return f"at index {index}"


def _parse_sync_args(value: Any, label: str) -> Tuple[str, ...]:
    if isinstance(value, str):
        try:
            args = shlex.split(value)
        except ValueError as e:
            raise ConfigError(f"Job {label}: cannot parse command: {e}")
    elif isinstance(value, (list, tuple)) and all(isinstance(a, str) for a in value):
        args = list(value)
    else:
        raise ConfigError(
            f"Job {label}: 'command' must be a string or a list of strings"
        )
    if not args:
        raise ConfigError(f"Job {label}: 'command' is empty")
    return tuple(args)


def _optional_str(raw: Mapping[str, Any], key: str, label: str) -> Optional[str]:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"Job {label}: '{key}' must be a string")
    return value.strip() or None


def parse_job(index: int, raw: Any) -> JobDefinition:
    """Build a ``JobDefinition`` from one raw job spec.

    Args:
        index: Position of the job spec in the configuration
        raw: Mapping with ``name``, ``schedule`` and exactly one of
            ``command`` (rclone arguments) or ``run`` (shell command line)

    Returns:
        The validated job definition

    Raises:
        ConfigError: If the job spec is not a mapping, has neither or both
            actions, or has a field of the wrong type
    """
    label = _job_label(index, raw)
    if not isinstance(raw, Mapping):
        raise ConfigError(f"Job {label}: expected a mapping, got {type(raw).__name__}")

    name = raw.get("name") or ""
    if not isinstance(name, str):
        raise ConfigError(f"Job {label}: 'name' must be a string")

    schedule = _optional_str(raw, "schedule", label)

    command = raw.get("command")
    if isinstance(command, str) and not command.strip():
        command = None
    run = _optional_str(raw, "run", label)

    if command is not None and run is not None:
        raise ConfigError(
            f"Job {label}: set either 'command' or 'run', not both",
            details={"command": command, "run": run},
        )
    if command is None and run is None:
        raise ConfigError(f"Job {label}: one of 'command' or 'run' is required")

    action: JobAction
    if run is not None:
        action = ShellCommand(command=run)
    else:
        action = SyncCommand(args=_parse_sync_args(command, label))

    return JobDefinition(index=index, name=name, action=action, schedule=schedule)


def load_jobs(raw_jobs: Optional[Sequence[Any]]) -> List[JobDefinition]:
    """Validate raw job specs and assign indices in input order."""
    if raw_jobs is None:
        return []
    if isinstance(raw_jobs, (str, bytes)) or not isinstance(raw_jobs, Sequence):
        raise ConfigError("'jobs' must be a list")
    return [parse_job(index, raw) for index, raw in enumerate(raw_jobs)]


class JobRegistry:
    """Read-only, ordered collection of job definitions.

    Example:
        registry = JobRegistry.load([
            {"name": "Nightly", "schedule": "0 2 * * *", "command": "sync /data remote:data"},
            {"name": "Cleanup", "run": "find /tmp/backup -mtime +7 -delete"},
        ])
        registry.get(1).action  # ShellCommand(...)
    """

    def __init__(self, jobs: Sequence[JobDefinition] = ()) -> None:
        for position, job in enumerate(jobs):
            if job.index != position:
                raise ConfigError(
                    f"Job '{job.display_name}' has index {job.index}, expected {position}"
                )
        self._jobs: Tuple[JobDefinition, ...] = tuple(jobs)

    @classmethod
    def load(cls, raw_jobs: Optional[Sequence[Any]]) -> "JobRegistry":
        registry = cls(load_jobs(raw_jobs))
        logger.info(f"Loaded {len(registry)} jobs")
        return registry

    def list(self) -> List[JobDefinition]:
        """Snapshot of all jobs in index order."""
        return list(self._jobs)

    def get(self, index: int) -> JobDefinition:
        """Get a job by index.

        Raises:
            JobNotFoundError: If no job is registered at ``index``
        """
        if not 0 <= index < len(self._jobs):
            raise JobNotFoundError(index, len(self._jobs))
        return self._jobs[index]

    @property
    def scheduled_jobs(self) -> List[JobDefinition]:
        return [job for job in self._jobs if job.is_scheduled]

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> Iterator[JobDefinition]:
        return iter(self._jobs)
