"""Shared CLI app objects and helpers."""

from pathlib import Path

import typer
from rich.console import Console

from nettab.modules.store.models import RequestRecord

app = typer.Typer(
    name="nettab",
    help="Inspect the outbound HTTP traffic of a running Python process",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def discovery_option():
    return typer.Option(
        None,
        "--discovery-file",
        help="Discovery file of the instance to attach to (default: per-user temp file)",
    )


def fail(message: str) -> typer.Exit:
    """Print ``message`` in red and return the exit to raise."""
    err_console.print(f"[red]{message}[/red]")
    return typer.Exit(1)


def find_by_prefix(records: list[RequestRecord], prefix: str) -> RequestRecord:
    """Resolve an id prefix to exactly one record, or exit with an error."""
    matches = [record for record in records if record.id.startswith(prefix)]
    if not matches:
        raise fail(f"No request with id starting with '{prefix}'.")
    if len(matches) > 1:
        raise fail(f"'{prefix}' is ambiguous ({len(matches)} requests match).")
    return matches[0]


def discovery_path(value: Path | None) -> Path | None:
    return value.expanduser() if value is not None else None
