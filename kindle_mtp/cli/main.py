"""
Main CLI entry point for kindle-mtp.

This module defines the root CLI group and initializes the application.

Usage:
    kindle-mtp --help
    kindle-mtp status
    kindle-mtp ls /documents -l
"""

from __future__ import annotations

import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from kindle_mtp import __version__
from kindle_mtp.cli.commands import device, files
from kindle_mtp.cli.output import Output
from kindle_mtp.config import Config, get_config
from kindle_mtp.constants import APP_NAME, EXIT_INTERRUPTED, LOG_FILE_NAME

# Rich consoles: results on stdout, logs and progress on stderr
console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool, debug: bool, quiet: bool, config: Config) -> None:
    """Configure logging based on verbosity flags and configuration."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    elif quiet:
        level = logging.ERROR
    else:
        level = getattr(logging, config.log_level, logging.WARNING)

    handlers: list[logging.Handler] = [
        RichHandler(console=err_console, rich_tracebacks=True, show_path=debug)
    ]

    file_error: Optional[OSError] = None
    if config.log_to_file:
        try:
            config.log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(config.log_dir / LOG_FILE_NAME)
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
            )
            handlers.append(file_handler)
        except OSError as e:
            file_error = e

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
    )

    if file_error is not None:
        logger.warning(f"Cannot write log file in {config.log_dir}: {file_error}")


@click.group()
@click.version_option(version=__version__, prog_name=APP_NAME)
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format.")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug output (more verbose than -v).",
)
@click.option(
    "--config",
    type=click.Path(exists=False),
    help="Path to config file.",
)
@click.option(
    "-d", "--device",
    "selector",
    metavar="BUS:DEVNUM",
    help="Select a device when several Kindles are attached.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    as_json: bool,
    quiet: bool,
    verbose: bool,
    debug: bool,
    config: Optional[str],
    selector: Optional[str],
) -> None:
    """
    kindle-mtp - Manage Kindle files via MTP over USB.

    Device paths are absolute and '/'-separated, e.g. /documents/book.mobi.

    Examples:

        Show connection status:
        $ kindle-mtp status

        List books:
        $ kindle-mtp ls /documents -l

        Back up all documents:
        $ kindle-mtp pull -r /documents ./kindle-backup
    """
    loaded = Config.load(Path(config)) if config else get_config()
    setup_logging(verbose, debug, quiet, loaded)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["console"] = console
    ctx.obj["config"] = loaded
    ctx.obj["selector"] = selector or loaded.device.selector
    ctx.obj["output"] = Output(
        console=console,
        err_console=err_console,
        as_json=as_json,
        quiet=quiet,
    )


# Register commands
cli.add_command(device.devices_cmd)
cli.add_command(device.status_cmd)
cli.add_command(device.info_cmd)
cli.add_command(files.ls_cmd)
cli.add_command(files.pull_cmd)
cli.add_command(files.push_cmd)
cli.add_command(files.rm_cmd)
cli.add_command(files.mkdir_cmd)


def _terminate(signum: int, frame) -> None:
    """Turn SIGTERM into KeyboardInterrupt so open sessions are released."""
    raise KeyboardInterrupt


def main() -> None:
    """Main entry point."""
    signal.signal(signal.SIGTERM, _terminate)
    try:
        cli(prog_name=APP_NAME)
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(EXIT_INTERRUPTED)


if __name__ == "__main__":
    main()
