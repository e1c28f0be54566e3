"""rclone-scheduler run command - Start the scheduler and the jobs API."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from rclone_scheduler.cli.error_handler import handle_errors
from rclone_scheduler.config import AppConfig

app = typer.Typer(help="Start the cron scheduler and the jobs API.")
console = Console()


def _setup_logging(config: AppConfig) -> None:
    """Apply the logging section of the config, unless CLI flags override it."""
    from rclone_scheduler.main import (
        DEBUG_FORMAT,
        cli_log_level,
        get_global_option,
        setup_logging,
    )

    default_level = logging.getLevelName(config.logging.level.upper())
    if not isinstance(default_level, int):
        default_level = logging.INFO

    debug = bool(get_global_option("debug"))
    log_file = get_global_option("log_file") or config.logging.file

    setup_logging(
        level=cli_log_level(default_level),
        format_str=DEBUG_FORMAT if debug else config.logging.format,
        log_file=log_file,
        quiet=bool(get_global_option("quiet")),
    )


@app.callback(invoke_without_command=True)
@handle_errors
def run(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file (YAML, TOML or JSON).",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    host: Optional[str] = typer.Option(
        None,
        "--host",
        help="Address the jobs API binds to.",
    ),
    port: Optional[int] = typer.Option(
        None,
        "--port",
        "-p",
        help="Port the jobs API listens on.",
        min=1,
        max=65535,
    ),
) -> None:
    """Start the scheduler in the foreground.

    This command:
    - Loads and validates all jobs and their cron schedules
    - Fires scheduled jobs for as long as it runs
    - Serves the jobs API and dashboard for manual runs

    Invalid configuration stops startup before the API port is bound.

    Example:
        rclone-scheduler run --config config.yaml
        rclone-scheduler run --port 8098
    """
    from rclone_scheduler.config import load_config
    from rclone_scheduler.daemon.service import run_service

    config = load_config(config_file)
    if host:
        config.api.host = host
    if port:
        config.api.port = port

    _setup_logging(config)

    console.print("[bold green]Starting rclone-scheduler...[/bold green]")
    console.print(f"[dim]Config: {config.source or 'defaults'}, jobs: {len(config.jobs)}[/dim]")

    try:
        asyncio.run(run_service(config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
