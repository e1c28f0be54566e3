"""rclone-scheduler jobs command - Inspect and run configured jobs."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from rclone_scheduler.cli.error_handler import handle_errors
from rclone_scheduler.cli.exit_codes import ExitCode

app = typer.Typer(help="List, validate and run configured jobs.")
console = Console()

PREVIEW_LENGTH = 40

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to configuration file (YAML, TOML or JSON).",
    exists=True,
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
)


def _preview(text: str) -> str:
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "…"
    return text


@app.command("list")
@handle_errors
def list_jobs(config_file: Optional[Path] = ConfigOption) -> None:
    """List all configured jobs.

    Example:
        rclone-scheduler jobs list
        rclone-scheduler jobs list --config options.json
    """
    from rclone_scheduler.api.app import UNSCHEDULED_LABEL, summarize
    from rclone_scheduler.config import load_config
    from rclone_scheduler.scheduler.state import build_state

    state = build_state(load_config(config_file))

    table = Table(title="Configured Jobs")
    table.add_column("Index", style="cyan", justify="right")
    table.add_column("Name", style="magenta")
    table.add_column("Type", style="yellow")
    table.add_column("Command")
    table.add_column("Schedule", style="green")
    table.add_column("Next Run")

    for job in state.registry:
        summary = summarize(job)
        next_run = state.scheduler.next_fire_time(job.index) if state.scheduler else None
        table.add_row(
            str(job.index),
            job.display_name,
            summary.type,
            _preview(summary.command or summary.run or ""),
            summary.schedule if job.is_scheduled else f"[dim]{UNSCHEDULED_LABEL}[/dim]",
            next_run.strftime("%Y-%m-%d %H:%M:%S %Z") if next_run else "N/A",
        )

    console.print(table)


@app.command("validate")
@handle_errors
def validate_jobs(config_file: Optional[Path] = ConfigOption) -> None:
    """Check that every job and cron schedule in the config is valid.

    Exits with the configuration error code on the first invalid job.

    Example:
        rclone-scheduler jobs validate --config config.yaml
    """
    from rclone_scheduler.config import load_config
    from rclone_scheduler.scheduler.state import build_state

    state = build_state(load_config(config_file))
    scheduled = len(state.registry.scheduled_jobs)
    console.print(
        f"[green]✓[/green] {len(state.registry)} jobs valid "
        f"({scheduled} scheduled, {len(state.registry) - scheduled} on demand)"
    )


@app.command("run")
@handle_errors
def run_job(
    index: int = typer.Argument(
        ...,
        help="Index of the job to run immediately.",
    ),
    config_file: Optional[Path] = ConfigOption,
) -> None:
    """Run a job once in the foreground and wait for it to finish.

    Job output is written to the log.

    Example:
        rclone-scheduler jobs run 0
    """
    from rclone_scheduler.cli.run import _setup_logging
    from rclone_scheduler.config import load_config
    from rclone_scheduler.scheduler.state import build_state

    config = load_config(config_file)
    _setup_logging(config)
    state = build_state(config, with_scheduler=False)

    job = state.registry.get(index)
    console.print(f"[bold]Running job:[/bold] {job.display_name}")

    outcome = asyncio.run(state.executor.run(index))

    if outcome is None:
        console.print(f"[yellow]Job {job.display_name} is already running[/yellow]")
        raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    if outcome.success:
        console.print(f"[green]✓[/green] Job completed in {outcome.duration:.1f}s")
    else:
        console.print(f"[red]✗[/red] Job failed: {outcome.error}")
        raise typer.Exit(code=ExitCode.JOB_FAILED)
