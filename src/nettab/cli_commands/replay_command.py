"""Ask a running instance to re-send a captured request."""

import asyncio
from pathlib import Path

import typer

from nettab.modules.store.models import RequestRecord

from .deps import cli_module
from .shared import app, console, discovery_option, discovery_path, fail, find_by_prefix

INIT_TIMEOUT = 5.0


async def _replay(prefix: str, path: Path | None) -> RequestRecord:
    cli = cli_module()
    snapshot: list[list[RequestRecord]] = []
    received = asyncio.Event()

    def on_logs(records: list[RequestRecord]) -> None:
        if not snapshot:
            snapshot.append(records)
            received.set()

    connection = await cli.connect_to_ipc(on_logs, discovery_path=path)
    try:
        try:
            await asyncio.wait_for(received.wait(), INIT_TIMEOUT)
        except TimeoutError:
            raise fail("Timed out waiting for the instance to send its requests.") from None
        record = find_by_prefix(snapshot[0], prefix)
        connection.send_replay(record)
        await connection.drain()
        return record
    finally:
        await connection.close()


@app.command()
def replay(
    request_id: str = typer.Argument(..., help="Id (or unique id prefix) of the request"),
    discovery_file: Path | None = discovery_option(),
) -> None:
    """Re-send a captured request from inside the running instance."""
    cli = cli_module()
    try:
        record = cli.safe_async_run(_replay(request_id, discovery_path(discovery_file)))
    except cli.NoRunningInstanceError as exc:
        raise fail(str(exc)) from exc
    console.print(f"[green]Replay sent:[/green] {record.method} {record.url}")
