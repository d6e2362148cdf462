"""nettab CLI - inspect the outbound HTTP traffic of a Python process."""

from nettab.autostart import activate, deactivate
from nettab.cli_commands import (  # noqa: F401  (registers commands)
    replay_command,
    run_command,
    status_command,
    version_command,
    view_command,
)
from nettab.cli_commands.shared import app, console
from nettab.config import mode_from_name
from nettab.modules.ipc import (
    NoRunningInstanceError,
    connect_to_ipc,
    default_discovery_path,
    read_discovery,
)
from nettab.utils.async_utils import safe_async_run
from nettab.utils.debug import configure_logging

__all__ = [
    "activate",
    "app",
    "configure_logging",
    "connect_to_ipc",
    "console",
    "deactivate",
    "default_discovery_path",
    "main",
    "mode_from_name",
    "NoRunningInstanceError",
    "read_discovery",
    "safe_async_run",
]


def main() -> None:
    """Entry point for the CLI."""
    app()
