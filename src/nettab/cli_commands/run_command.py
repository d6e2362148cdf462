"""Run a Python script with interception active."""

import runpy
import sys
from pathlib import Path

import typer

from .deps import cli_module
from .shared import app, console, fail


@app.command(
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def run(
    ctx: typer.Context,
    script: Path = typer.Argument(..., exists=True, dir_okay=False, help="Script to run"),
    mode: str = typer.Option(
        "headless-logs",
        "--mode",
        "-m",
        help="inline, headless, headless-logs or silent",
    ),
    ipc: bool = typer.Option(True, "--ipc/--no-ipc", help="Let external viewers attach"),
) -> None:
    """Run SCRIPT (plus any extra arguments) with its HTTP traffic captured."""
    cli = cli_module()
    try:
        settings = cli.mode_from_name(mode)
    except ValueError as exc:
        raise fail(str(exc)) from exc

    session = cli.activate(settings, ipc=ipc)
    if session is None:
        raise fail("Interception is disabled (NETTAB_ENV=production).")

    saved_argv = sys.argv
    sys.argv = [str(script), *ctx.args]
    exit_code = 0
    try:
        runpy.run_path(str(script), run_name="__main__")
    except SystemExit as exc:
        exit_code = exc.code if isinstance(exc.code, int) else (0 if exc.code is None else 1)
    finally:
        sys.argv = saved_argv
        captured = len(session.store)
        cli.deactivate()

    console.print(f"[dim]nettab captured {captured} request(s).[/dim]")
    if exit_code:
        raise typer.Exit(exit_code)
