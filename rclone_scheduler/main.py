"""Main CLI entry point for rclone-scheduler."""

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from rclone_scheduler import __app_name__, __version__
from rclone_scheduler.cli import jobs, run
from rclone_scheduler.cli.exit_codes import ExitCode

app = typer.Typer(
    name=__app_name__,
    help="rclone-scheduler - cron scheduling and a control API for backup jobs.",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

app.add_typer(run.app, name="run")
app.add_typer(jobs.app, name="jobs")

# Global state for CLI options
_global_state: dict[str, object] = {
    "verbose": False,
    "debug": False,
    "quiet": False,
    "log_file": None,
}

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEBUG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"{__app_name__} v{__version__}")
        raise typer.Exit(code=ExitCode.SUCCESS)


def setup_logging(
    level: int = logging.WARNING,
    format_str: str = DEFAULT_FORMAT,
    log_file: Optional[Path] = None,
    quiet: bool = False,
) -> None:
    """Configure the root logger.

    Args:
        level: Console log level
        format_str: Record format
        log_file: Optional log file (always receives DEBUG and above)
        quiet: Suppress console output entirely
    """
    handlers: list[logging.Handler] = []

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    if not quiet:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        handlers.append(console_handler)
    elif not log_file:
        handlers.append(logging.NullHandler())

    root_level = logging.DEBUG if log_file else level
    logging.basicConfig(
        level=root_level,
        format=format_str,
        handlers=handlers,
        force=True,
    )

    logging.getLogger(__name__).debug(
        f"Logging configured: level={logging.getLevelName(level)}, file={log_file}"
    )


def cli_log_level(default: int = logging.WARNING) -> int:
    """Log level selected by the global flags, or ``default``."""
    if _global_state["debug"]:
        return logging.DEBUG
    if _global_state["verbose"]:
        return logging.INFO
    if _global_state["quiet"]:
        return logging.ERROR
    return default


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Enable verbose output (INFO level logging).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode (DEBUG level logging).",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output.",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Log to file (logs DEBUG level regardless of console settings).",
    ),
) -> None:
    """rclone-scheduler - cron scheduling and a control API for backup jobs.

    [bold]Commands:[/bold]

    • [cyan]run[/cyan] - Start the scheduler and the jobs API
    • [cyan]jobs[/cyan] - List, validate and run configured jobs

    [bold]Examples:[/bold]

        rclone-scheduler run --config /data/options.json
        rclone-scheduler jobs list
        rclone-scheduler jobs run 0
    """
    if quiet and (verbose or debug):
        console.print("[red]Error:[/red] --quiet cannot be combined with --verbose or --debug")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    _global_state["verbose"] = verbose
    _global_state["debug"] = debug
    _global_state["quiet"] = quiet
    _global_state["log_file"] = log_file

    setup_logging(
        level=cli_log_level(),
        format_str=DEBUG_FORMAT if debug else DEFAULT_FORMAT,
        log_file=log_file,
        quiet=quiet,
    )


def get_global_option(name: str) -> object:
    """Get the value of a global CLI option."""
    return _global_state.get(name)


__all__ = [
    "app",
    "cli_log_level",
    "console",
    "get_global_option",
    "setup_logging",
]


if __name__ == "__main__":
    app()
