"""Discovery status of the running instance."""

from datetime import UTC, datetime
from pathlib import Path

import typer
from rich.table import Table

from .deps import cli_module
from .shared import app, console, discovery_option, discovery_path


@app.command()
def status(discovery_file: Path | None = discovery_option()) -> None:
    """Show whether an instance is running and where viewers can reach it."""
    cli = cli_module()
    path = discovery_path(discovery_file) or cli.default_discovery_path()
    info = cli.read_discovery(path)
    if info is None:
        console.print("[yellow]No running nettab instance.[/yellow]")
        console.print(f"[dim]Discovery file: {path}[/dim]")
        raise typer.Exit(1)

    started = datetime.fromtimestamp(info.created_at / 1000, tz=UTC) if info.created_at else None
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("PID", str(info.pid))
    table.add_row("Address", f"127.0.0.1:{info.port}")
    table.add_row("Started", started.isoformat(timespec="seconds") if started else "unknown")
    table.add_row("Discovery file", str(path))
    console.print("[green]nettab instance running[/green]")
    console.print(table)
