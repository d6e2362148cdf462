"""Live viewer attached to a running instance."""

import asyncio
from pathlib import Path

import typer

from nettab.console import LiveRequestView, build_details_panel, build_list_panel
from nettab.modules.store import RemoteStore
from nettab.utils.debug import debug_print

from .deps import cli_module
from .shared import (
    app,
    console,
    discovery_option,
    discovery_path,
    err_console,
    fail,
    find_by_prefix,
)

INIT_TIMEOUT = 5.0


async def _view(
    path: Path | None,
    once: bool,
    details: str | None,
    limit: int,
) -> None:
    cli = cli_module()
    remote = RemoteStore()
    received = asyncio.Event()

    def on_logs(records) -> None:
        debug_print(
            "ipc",
            "Snapshot received",
            console=err_console,
            logs=len(records),
            pending=sum(1 for r in records if r.is_pending),
        )
        remote.set_logs(records)
        received.set()

    connection = await cli.connect_to_ipc(on_logs, discovery_path=path)
    try:
        if once or details:
            try:
                await asyncio.wait_for(received.wait(), INIT_TIMEOUT)
            except TimeoutError:
                raise fail("Timed out waiting for the instance to send its requests.") from None
            records = remote.get_all()
            if details:
                console.print(build_details_panel(find_by_prefix(records, details)))
            else:
                console.print(build_list_panel(records[:limit], subtitle="snapshot"))
            return

        view = LiveRequestView(remote, console, subtitle="Ctrl+C to quit", limit=limit)
        await view.run_until(lambda: connection.closed)
        console.print("[yellow]The instance closed the connection.[/yellow]")
    finally:
        await connection.close()


@app.command()
def view(
    once: bool = typer.Option(False, "--once", help="Print the current requests and exit"),
    details: str | None = typer.Option(
        None,
        "--details",
        "-d",
        help="Show everything captured for the request whose id starts with this",
    ),
    limit: int = typer.Option(50, "--limit", help="Number of requests to show"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
    discovery_file: Path | None = discovery_option(),
) -> None:
    """Show the requests captured by a running instance."""
    cli = cli_module()
    cli.configure_logging(verbose)
    try:
        cli.safe_async_run(_view(discovery_path(discovery_file), once, details, limit))
    except cli.NoRunningInstanceError as exc:
        raise fail(str(exc)) from exc
    except KeyboardInterrupt:
        console.print("[dim]Viewer closed.[/dim]")
