"""Job executor for running configured jobs as child processes.

The JobExecutor is the single entry point through which both the cron
scheduler and the control API start runs. It guarantees that at most one
run per job index is in flight: a trigger that finds the job already
running is answered with ``TriggerResult.BUSY`` and dropped.
"""

import asyncio
import functools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set

from rclone_scheduler.config import ExecutorConfig
from rclone_scheduler.scheduler.registry import (
    JobDefinition,
    JobRegistry,
    ShellCommand,
    SyncCommand,
)

logger = logging.getLogger(__name__)

# Job stdout/stderr goes to its own logger so it can be routed or filtered
output_logger = logging.getLogger(f"{__name__}.output")

# Maximum length of a single output line kept from a child process
STREAM_LIMIT = 1024 * 1024


class TriggerResult(Enum):
    """Outcome of a trigger attempt."""

    ACCEPTED = "accepted"  # A new run was started
    BUSY = "busy"  # A run for this job is already in progress


@dataclass
class RunState:
    """Per-job "currently running" flag.

    Backed by a lock that is only ever acquired without blocking, so the
    transition from idle to running is a single atomic step no matter
    which thread or task attempts it.
    """

    index: int
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def running(self) -> bool:
        return self._lock.locked()


@dataclass
class RunOutcome:
    """Result of a single run.

    Attributes:
        index: Index of the job that ran
        name: Display name of the job
        started_at: When the run started
        completed_at: When the child process exited (or failed to start)
        success: Whether the process exited with code zero
        returncode: Exit code, None if the process never started
        error: Error message if the run failed
    """

    index: int
    name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    success: bool = False
    returncode: Optional[int] = None
    error: Optional[str] = None

    @property
    def duration(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


class JobExecutor:
    """Runs jobs as child processes, one run per job at a time.

    Accepted runs are spawned as tasks on the running event loop, so
    ``trigger`` must be called from within that loop (an async route
    handler or an APScheduler asyncio job).

    Example:
        executor = JobExecutor(registry, config.executor)
        result = executor.trigger(0)   # TriggerResult.ACCEPTED
        result = executor.trigger(0)   # TriggerResult.BUSY
        await executor.drain()
    """

    def __init__(
        self,
        registry: JobRegistry,
        config: Optional[ExecutorConfig] = None,
    ) -> None:
        """Initialize the executor.

        Args:
            registry: Registry of jobs that can be run
            config: Executor configuration
        """
        self._registry = registry
        self._config = config or ExecutorConfig()
        # One flag per job, never resized: the registry is immutable
        self._states: Dict[int, RunState] = {
            job.index: RunState(job.index) for job in registry
        }
        self._tasks: Set["asyncio.Task[RunOutcome]"] = set()

    def trigger(self, index: int) -> TriggerResult:
        """Start a run of a job unless one is already in flight.

        Returns as soon as the accept/busy decision is made; the run itself
        continues in the background.

        Args:
            index: Index of the job to run

        Returns:
            ACCEPTED if a run was started, BUSY if the job is already running

        Raises:
            JobNotFoundError: If no job is registered at ``index``
            RuntimeError: If called without a running event loop
        """
        job = self._registry.get(index)
        state = self._states[index]

        if not state.try_acquire():
            logger.debug(f"Job {job.display_name} is already running")
            return TriggerResult.BUSY

        try:
            loop = asyncio.get_running_loop()
            task = loop.create_task(self._run(job), name=f"job-{index}")
        except RuntimeError:
            state.release()
            raise

        self._tasks.add(task)
        # Released here: a task cancelled before its first step never runs its body
        task.add_done_callback(functools.partial(self._on_task_done, state))
        return TriggerResult.ACCEPTED

    async def run(self, index: int) -> Optional[RunOutcome]:
        """Run a job and wait for it to finish.

        Uses the same per-job flag as ``trigger``.

        Returns:
            The run outcome, or None if the job was already running
        """
        job = self._registry.get(index)
        state = self._states[index]
        if not state.try_acquire():
            logger.info(f"Job {job.display_name} is already running")
            return None
        try:
            return await self._run(job)
        finally:
            state.release()

    def is_running(self, index: int) -> bool:
        self._registry.get(index)
        return self._states[index].running

    @property
    def running_jobs(self) -> List[int]:
        """Indices of jobs with a run in flight."""
        return [index for index, state in self._states.items() if state.running]

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for background runs to finish.

        Args:
            timeout: Maximum seconds to wait, None to wait indefinitely

        Returns:
            True if no background run is left in flight
        """
        if not self._tasks:
            return True
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        return not pending

    async def cancel_all(self) -> None:
        """Cancel background runs, killing their child processes."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, job: JobDefinition) -> RunOutcome:
        try:
            return await self.execute(job)
        except asyncio.CancelledError:
            logger.warning(f"Job {job.display_name} was cancelled")
            raise

    def _on_task_done(self, state: RunState, task: "asyncio.Task[RunOutcome]") -> None:
        self._tasks.discard(task)
        state.release()
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.critical(f"Run task {task.get_name()} raised", exc_info=exc)

    async def execute(self, job: JobDefinition) -> RunOutcome:
        """Run a job's action to completion, ignoring the per-job flag.

        Args:
            job: The job to run

        Returns:
            Run outcome with exit status
        """
        started_at = datetime.now()
        logger.info(f"Starting job {job.display_name}")

        try:
            process = await self._spawn(job)
        except OSError as e:
            logger.error(f"Job {job.display_name} failed to start: {e}")
            return RunOutcome(
                index=job.index,
                name=job.display_name,
                started_at=started_at,
                completed_at=datetime.now(),
                success=False,
                error=str(e),
            )

        try:
            await asyncio.gather(
                self._forward_output(process.stdout, job),
                self._forward_output(process.stderr, job),
            )
            returncode = await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        outcome = RunOutcome(
            index=job.index,
            name=job.display_name,
            started_at=started_at,
            completed_at=datetime.now(),
            success=returncode == 0,
            returncode=returncode,
        )

        if outcome.success:
            logger.info(f"Job {job.display_name} completed in {outcome.duration:.1f}s")
        else:
            outcome.error = f"exited with code {returncode}"
            logger.error(f"Job {job.display_name} failed: {outcome.error}")

        return outcome

    async def _spawn(self, job: JobDefinition) -> asyncio.subprocess.Process:
        """Start the child process for a job's action."""
        action = job.action

        if isinstance(action, SyncCommand):
            argv = [self._config.rclone_binary]
            if self._config.rclone_config:
                argv += ["--config", str(self._config.rclone_config)]
            argv += list(action.args)
            logger.debug(f"Job {job.display_name}: exec {argv}")
            return await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )

        if isinstance(action, ShellCommand):
            logger.debug(f"Job {job.display_name}: sh -c {action.command!r}")
            return await asyncio.create_subprocess_shell(
                action.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )

        raise TypeError(f"Unsupported action for job {job.display_name}: {action!r}")

    async def _forward_output(
        self,
        stream: Optional[asyncio.StreamReader],
        job: JobDefinition,
    ) -> None:
        """Log a child process stream line by line, tagged with the job name."""
        if stream is None:
            return

        while True:
            try:
                line = await stream.readline()
            except ValueError:
                logger.warning(
                    f"Job {job.display_name}: dropped output line longer than {STREAM_LIMIT} bytes"
                )
                continue

            if not line:
                break

            text = line.decode(errors="replace").rstrip("\r\n")
            if text:
                output_logger.info(f"[{job.display_name}] {text}")
