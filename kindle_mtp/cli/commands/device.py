"""
Device-related CLI commands.

Commands for detecting a Kindle and showing its identity and storage.
"""

from __future__ import annotations

import click
from rich.panel import Panel
from rich.table import Table

from kindle_mtp.cli.output import Output, get_output, handle_errors
from kindle_mtp.core.device import DeviceSession


def open_session(ctx: click.Context) -> DeviceSession:
    """Open a session on the selected (or only) Kindle."""
    return DeviceSession.open(selector=ctx.obj.get("selector"))


def format_gb(size: int) -> str:
    """Format bytes as decimal gigabytes."""
    return f"{size / 1_000_000_000:.1f}GB"


@click.command("devices")
@click.pass_context
@handle_errors
def devices_cmd(ctx: click.Context) -> None:
    """List attached Kindles without opening them."""
    output = get_output(ctx)
    devices = DeviceSession().detect()

    def render() -> None:
        if not devices:
            output.print(
                "[yellow]No Kindle devices found.[/yellow]\n"
                "Make sure your Kindle is:\n"
                "  1. Connected via USB\n"
                "  2. Unlocked\n"
                "  3. Not mounted by another MTP client"
            )
            return

        table = Table(title="Attached Kindles")
        table.add_column("Location", style="cyan", no_wrap=True)
        table.add_column("Vendor", style="magenta")
        table.add_column("Product")
        table.add_column("ID", style="dim")

        for dev in devices:
            table.add_row(
                dev.location,
                dev.vendor,
                dev.product,
                f"{dev.vendor_id:04x}:{dev.product_id:04x}",
            )

        output.print(table)
        output.print(f"\n[dim]Found {len(devices)} device(s)[/dim]")

    output.emit([d.to_dict() for d in devices], render)


@click.command("status")
@click.pass_context
@handle_errors
def status_cmd(ctx: click.Context) -> None:
    """Show connection status and free space."""
    output = get_output(ctx)

    with open_session(ctx) as session:
        info = session.device_info()
        storage = session.storage_info()

    data = {
        "connected": True,
        "model": info.friendly_name,
        "free_bytes": storage.free_capacity,
        "total_bytes": storage.total_capacity,
    }

    output.emit(
        data,
        lambda: output.print(
            f"[green]{info.display_name}[/green] connected - "
            f"{format_gb(storage.free_capacity)} free of {format_gb(storage.total_capacity)}",
            highlight=False,
        ),
    )


@click.command("info")
@click.pass_context
@handle_errors
def info_cmd(ctx: click.Context) -> None:
    """Show detailed device information."""
    output = get_output(ctx)

    with open_session(ctx) as session:
        info = session.device_info()
        storage = session.storage_info()

    data = info.to_dict()
    data.update(
        storage_description=storage.description,
        total_bytes=storage.total_capacity,
        free_bytes=storage.free_capacity,
    )

    output.emit(data, lambda: _render_info(output, data))


def _render_info(output: Output, data: dict) -> None:
    content = [
        f"[bold]Manufacturer:[/bold] {data['manufacturer']}",
        f"[bold]Model:[/bold] {data['model']}",
        f"[bold]Serial:[/bold] {data['serial'] or '(not available)'}",
        f"[bold]USB ID:[/bold] {data['vendor_id']}:{data['product_id']} at {data['location']}",
        f"[bold]Storage:[/bold] {data['storage_description']} ({format_gb(data['total_bytes'])})",
        f"[bold]Free:[/bold] {format_gb(data['free_bytes'])}",
    ]
    output.print(Panel("\n".join(content), title=data["device"], expand=False))
