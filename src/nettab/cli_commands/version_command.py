"""Version command."""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

from .shared import app, console


@app.command()
def version() -> None:
    """Show the installed nettab version."""
    try:
        current_version = pkg_version("nettab")
    except PackageNotFoundError:
        current_version = "0.0.0+unknown"

    console.print(f"nettab {current_version}")
