"""
CLI commands for browsing and transferring files.

This module provides commands for listing device directories and for
pulling, pushing, deleting and creating files and directories by path.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import click
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from kindle_mtp.cli.commands.device import open_session
from kindle_mtp.cli.output import Output, get_output, handle_errors
from kindle_mtp.core.device import ObjectEntry, format_size
from kindle_mtp.core.transfer import FileManager, OperationReport, normalize


@contextmanager
def transfer_progress(output: Output) -> Iterator:
    """
    Show a progress bar on stderr and yield a report callback for it.

    Hidden in JSON and quiet modes.
    """
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=output.err_console,
        transient=True,
        disable=not output.show_progress,
    ) as progress:
        task = progress.add_task("Planning...", total=100)

        def on_progress(report: OperationReport) -> None:
            progress.update(
                task,
                completed=report.percentage,
                description=f"[cyan]{escape(report.current or '')}[/cyan]",
            )

        yield on_progress


def _render_listing(output: Output, entries: list[ObjectEntry], long: bool) -> None:
    if not entries:
        output.print("(empty)")
        return

    if not long:
        for entry in entries:
            name = f"{entry.name}/" if entry.is_directory else entry.name
            output.print(escape(name), highlight=False)
        return

    table = Table(box=None, show_header=False, pad_edge=False)
    table.add_column("Type", style="dim")
    table.add_column("Size", justify="right")
    table.add_column("Modified", style="dim")
    table.add_column("Name", style="cyan")

    for entry in entries:
        modified = entry.modified.strftime("%Y-%m-%d %H:%M") if entry.modified else "-"
        table.add_row(
            "d" if entry.is_directory else "-",
            entry.size_human,
            modified,
            escape(f"{entry.name}/" if entry.is_directory else entry.name),
        )

    output.print(table)


@click.command("ls")
@click.argument("path", default="/")
@click.option("-l", "--long", "long_format", is_flag=True, help="Long format with sizes.")
@click.pass_context
@handle_errors
def ls_cmd(ctx: click.Context, path: str, long_format: bool) -> None:
    """
    List directory contents.

    PATH is the directory to list (default: root).

    Examples:

        $ kindle-mtp ls
        $ kindle-mtp ls /documents -l
    """
    output = get_output(ctx)
    segments = normalize(path)

    with open_session(ctx) as session:
        entries = FileManager(session).list_directory(segments)

    output.emit(
        {"path": str(segments), "entries": [entry.to_dict() for entry in entries]},
        lambda: _render_listing(output, entries, long_format),
    )


@click.command("pull")
@click.argument("remote")
@click.argument("local", default=".", type=click.Path())
@click.option("-r", "--recursive", is_flag=True, help="Pull directories recursively.")
@click.pass_context
@handle_errors
def pull_cmd(ctx: click.Context, remote: str, local: str, recursive: bool) -> None:
    """
    Pull (download) files from the device.

    REMOTE is the path on the device.
    LOCAL is the destination on your computer (default: current directory).

    Examples:

        $ kindle-mtp pull /documents/book.mobi
        $ kindle-mtp pull -r /documents ./kindle-backup
    """
    output = get_output(ctx)
    config = ctx.obj["config"]

    with open_session(ctx) as session:
        manager = FileManager(session, overwrite=config.transfer.overwrite)
        with transfer_progress(output) as on_progress:
            report = manager.pull(
                remote,
                Path(local),
                recursive=recursive,
                progress_callback=on_progress,
            )

    def render() -> None:
        if report.planned == 1:
            output.print(
                f"Downloaded {escape(report.root)} -> {escape(report.destination)} "
                f"({report.completed_bytes} bytes)",
                highlight=False,
            )
            return
        output.print(
            f"[green]✓[/green] Pulled {escape(report.root)} -> {escape(report.destination)} "
            f"({len(report.completed)} entries, {format_size(report.completed_bytes)})",
            highlight=False,
        )

    output.emit(report.to_dict(), render)


@click.command("push")
@click.argument("local", type=click.Path(exists=True, dir_okay=False))
@click.argument("remote_dir")
@click.option("-f", "--force", is_flag=True, help="Replace an existing file of the same name.")
@click.pass_context
@handle_errors
def push_cmd(ctx: click.Context, local: str, remote_dir: str, force: bool) -> None:
    """
    Push (upload) a file to the device.

    LOCAL is the file on your computer.
    REMOTE_DIR is the destination directory on the device.

    Examples:

        $ kindle-mtp push ./book.mobi /documents
        $ kindle-mtp push -f ./book.mobi /documents
    """
    output = get_output(ctx)
    directory = normalize(remote_dir)

    with open_session(ctx) as session:
        entry = FileManager(session).push(Path(local), directory, force=force)

    remote_path = str(directory.child(entry.name))
    data = entry.to_dict()
    data["path"] = remote_path

    output.emit(
        data,
        lambda: output.print(
            f"Uploaded {escape(local)} -> {escape(remote_path)} ({entry.size_human})",
            highlight=False,
        ),
    )


@click.command("rm")
@click.argument("remote")
@click.option("-r", "--recursive", is_flag=True, help="Delete directories and their contents.")
@click.pass_context
@handle_errors
def rm_cmd(ctx: click.Context, remote: str, recursive: bool) -> None:
    """
    Delete a file or directory on the device.

    Examples:

        $ kindle-mtp rm /documents/old.pdf
        $ kindle-mtp rm -r /documents/samples
    """
    output = get_output(ctx)

    with open_session(ctx) as session:
        with transfer_progress(output) as on_progress:
            report = FileManager(session).delete(
                remote,
                recursive=recursive,
                progress_callback=on_progress,
            )

    def render() -> None:
        if report.planned == 1:
            output.print(f"Deleted {escape(report.root)}", highlight=False)
        else:
            output.print(
                f"[green]✓[/green] Deleted {escape(report.root)} ({len(report.completed)} entries)",
                highlight=False,
            )

    output.emit(report.to_dict(), render)


@click.command("mkdir")
@click.argument("path")
@click.option("-f", "--force", is_flag=True, help="Succeed if the directory already exists.")
@click.pass_context
@handle_errors
def mkdir_cmd(ctx: click.Context, path: str, force: bool) -> None:
    """
    Create a directory on the device.

    The parent directory must already exist.

    Examples:

        $ kindle-mtp mkdir /documents/series
    """
    output = get_output(ctx)
    segments = normalize(path)

    with open_session(ctx) as session:
        entry, created = FileManager(session).mkdir(segments, force=force)

    data = {"path": str(segments), "id": entry.id, "created": created}
    message = "Created directory" if created else "Directory exists:"
    output.emit(
        data,
        lambda: output.print(f"{message} {escape(str(segments))}", highlight=False),
    )
