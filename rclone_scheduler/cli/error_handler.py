"""Global exception handling for the rclone-scheduler CLI.

Commands are wrapped with ``handle_errors`` so every failure ends in a
consistent message and exit code.
"""

from functools import wraps
from typing import Any, Callable, TypeVar
import logging

import typer
from rich.console import Console

from rclone_scheduler.cli.exit_codes import ExitCode
from rclone_scheduler.exceptions import SchedulerError

# Console for error output (stderr)
console = Console(stderr=True)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def handle_errors(func: F) -> F:
    """Decorator for consistent error handling across CLI commands.

    - SchedulerError subclasses: print the message, exit with its exit code
    - KeyboardInterrupt: print a cancellation message, exit with 130
    - Other exceptions: print a generic error, exit with 1

    Example:
        @app.command()
        @handle_errors
        def my_command():
            raise ConfigError("Invalid config")
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except SchedulerError as e:
            logger.debug(f"{type(e).__name__}: {e.message}")

            console.print(f"[red]Error:[/red] {e.message}")
            if e.details:
                for key, value in e.details.items():
                    console.print(f"  [dim]{key}:[/dim] {value}")

            raise typer.Exit(code=e.exit_code)

        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user.[/yellow]")
            raise typer.Exit(code=ExitCode.CANCELLED)

        except typer.Exit:
            raise

        except Exception as e:
            logger.exception("Unexpected error occurred")
            console.print(f"[red]Unexpected error:[/red] {e}")
            console.print("[dim]Run with --debug for more details[/dim]")
            raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore[return-value]
