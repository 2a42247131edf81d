"""
Output rendering shared by all commands.

Results go to stdout, either as rich-formatted text or as JSON.
Errors and progress go to stderr, except that in JSON mode an error is
written to stdout as {"error": {...}} so scripts can parse it.
"""

from __future__ import annotations

import functools
import json
import logging
from typing import Any, Callable, Optional

import click
from rich.console import Console
from rich.markup import escape

from kindle_mtp.constants import EXIT_INTERRUPTED
from kindle_mtp.exceptions import InternalError, KindleMTPError, PartiallyFailedError

logger = logging.getLogger(__name__)


class Output:
    """
    Human or JSON output for one invocation.

    Attributes:
        console: Console for results (stdout).
        err_console: Console for errors and progress (stderr).
        as_json: Emit machine-readable JSON instead of text.
        quiet: Suppress everything but errors.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
        as_json: bool = False,
        quiet: bool = False,
    ):
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)
        self.as_json = as_json
        self.quiet = quiet

    @property
    def show_progress(self) -> bool:
        return not (self.as_json or self.quiet)

    def emit(self, data: Any, human: Callable[[], None]) -> None:
        """
        Emit a command result.

        Args:
            data: JSON-serializable result.
            human: Renders the result as text on the console.
        """
        if self.quiet:
            return
        if self.as_json:
            click.echo(json.dumps(data, indent=2, default=str))
        else:
            human()

    def print(self, *objects: Any, **kwargs: Any) -> None:
        """Print human-readable text unless quiet or in JSON mode."""
        if self.quiet or self.as_json:
            return
        self.console.print(*objects, **kwargs)

    def error(self, exc: KindleMTPError) -> None:
        """Render an error. Errors are shown even when quiet."""
        if self.as_json:
            click.echo(json.dumps({"error": exc.to_dict()}, indent=2, default=str))
            return

        self.err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
        if isinstance(exc, PartiallyFailedError):
            for failure in exc.failures:
                self.err_console.print(f"  [red]✗[/red] {escape(failure.path)}: {escape(str(failure.error))}")

    def interrupted(self) -> None:
        if self.as_json:
            click.echo(json.dumps({"error": {"kind": "interrupted", "exit_code": EXIT_INTERRUPTED}}))
            return
        self.err_console.print("\n[yellow]Interrupted by user[/yellow]")


def get_output(ctx: click.Context) -> Output:
    """Get the Output from context or create a default one."""
    if ctx.obj and "output" in ctx.obj:
        return ctx.obj["output"]
    return Output()


def handle_errors(func: Callable) -> Callable:
    """
    Decorator rendering errors and exiting with their exit code.

    KindleMTPError exits with the code of its kind, an interruption with
    130 and anything unexpected as an internal error (re-raised under
    --debug).
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        ctx = click.get_current_context()
        output = get_output(ctx)
        try:
            return func(*args, **kwargs)
        except KindleMTPError as e:
            output.error(e)
            raise SystemExit(e.exit_code)
        except KeyboardInterrupt:
            output.interrupted()
            raise SystemExit(EXIT_INTERRUPTED)
        except Exception as e:
            if ctx.obj and ctx.obj.get("debug"):
                raise
            logger.debug(f"Unexpected error in {func.__name__}", exc_info=True)
            error = InternalError("Unexpected error", str(e))
            output.error(error)
            raise SystemExit(error.exit_code)

    return wrapper
