"""Main service for rclone-scheduler.

This module provides the process lifecycle:
- Build the scheduler state (fails fast on bad configuration)
- Start the cron scheduler
- Serve the control API with uvicorn
- Signal handling for graceful shutdown
"""

import asyncio
import logging
import signal
from typing import Optional

import uvicorn

from rclone_scheduler.api.app import create_app
from rclone_scheduler.config import AppConfig
from rclone_scheduler.scheduler.state import SchedulerState, build_state

logger = logging.getLogger(__name__)


class SchedulerService:
    """Main service for rclone-scheduler.

    The SchedulerService owns the scheduler state and the HTTP server and
    manages their lifecycle. Building the state happens in the constructor,
    so an invalid job or schedule raises ``ConfigError`` before the port is
    bound.

    Example:
        service = SchedulerService(config)

        await service.start()
        await service.run_until_shutdown()
        await service.stop()
    """

    def __init__(self, config: AppConfig, state: Optional[SchedulerState] = None):
        """Initialize the service.

        Args:
            config: Application configuration
            state: Prebuilt scheduler state (built from config if omitted)

        Raises:
            ConfigError: If the configured jobs or schedules are invalid
        """
        self._config = config
        self._state = state or build_state(config)
        self._server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the scheduler and the HTTP server.

        Raises:
            RuntimeError: If the HTTP server fails to start
        """
        logger.info("Starting rclone-scheduler...")

        if self._state.scheduler:
            await self._state.scheduler.start()

        self._server = uvicorn.Server(
            uvicorn.Config(
                create_app(self._state),
                host=self._config.api.host,
                port=self._config.api.port,
                log_config=None,
                access_log=False,
                lifespan="off",
            )
        )
        self._server_task = asyncio.create_task(self._server.serve(), name="api-server")

        while not self._server.started:
            if self._server_task.done():
                await self._server_task
                raise RuntimeError(
                    f"Jobs API failed to start on {self._config.api.host}:{self._config.api.port}"
                )
            await asyncio.sleep(0.05)

        self._running = True
        logger.info(f"Jobs API listening on {self._config.api.host}:{self._config.api.port}")

    async def stop(self) -> None:
        """Stop the service.

        Stops firing new runs, shuts down the HTTP server, then waits up to
        ``executor.shutdown_timeout`` for in-flight runs before killing them.
        """
        logger.info("Stopping rclone-scheduler...")

        self._running = False

        if self._state.scheduler:
            await self._state.scheduler.stop()

        if self._server and self._server_task:
            self._server.should_exit = True
            try:
                await self._server_task
            except Exception as e:
                logger.warning(f"Error stopping API server: {e}")
            self._server = None
            self._server_task = None

        executor = self._state.executor
        running = executor.running_jobs
        if running:
            timeout = self._config.executor.shutdown_timeout
            logger.info(f"Waiting up to {timeout:.0f}s for {len(running)} running jobs")
            if not await executor.drain(timeout=timeout):
                logger.warning("Jobs still running after shutdown timeout, killing them")
                await executor.cancel_all()

        logger.info("rclone-scheduler stopped")

    async def run_until_shutdown(self) -> None:
        """Block until request_shutdown() is called."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request service shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def state(self) -> SchedulerState:
        return self._state


async def run_service(config: AppConfig) -> None:
    """Run the service until SIGTERM or SIGINT.

    Args:
        config: Application configuration

    Raises:
        ConfigError: If the configured jobs or schedules are invalid
    """
    service = SchedulerService(config)

    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        service.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda signum, frame: handle_signal(signal.Signals(signum)))

    try:
        await service.start()
        await service.run_until_shutdown()
    finally:
        await service.stop()
