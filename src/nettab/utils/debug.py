"""Logging setup and debug output for the CLI and auto-start entry point.

Library modules only log through ``logging.getLogger(__name__)``; handlers are
attached here, on the ``nettab`` logger, by the entry points.
"""

import json
import logging
import threading
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax

# Thread-local storage for debug state
_debug_state = threading.local()


def configure_logging(verbose: bool = False, name: str = "nettab") -> logging.Logger:
    """Attach a single rich handler to the ``nettab`` logger.

    ``verbose`` lowers the level to DEBUG, which surfaces isolated observer
    failures; otherwise only warnings are shown.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        level=level,
        show_path=verbose,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    set_debug_enabled(verbose)
    return logger


def set_debug_enabled(enabled: bool) -> None:
    """Set debug mode for the current thread/session."""
    _debug_state.enabled = enabled


def is_debug_enabled() -> bool:
    """Check if debug mode is enabled for the current thread/session."""
    return getattr(_debug_state, "enabled", False)


def debug_print(category: str, message: str, console: Console | None = None, **data: Any) -> None:
    """Print debug information if debug mode is enabled.

    Args:
        category: Debug category (ipc, replay, store)
        message: Main message to display
        console: Console to print on (default: a fresh stderr console)
        **data: Additional key-value pairs to display
    """
    if not is_debug_enabled():
        return
    console = console or Console(stderr=True)
    console.print(f"[DEBUG:{category}] {message}", style="bold cyan")
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, dict):
            try:
                json_str = json.dumps(value, indent=2)
                syntax = Syntax(json_str, "json", theme="monokai", line_numbers=False)
                console.print(f"  {key}:", style="dim")
                console.print(syntax)
            except (TypeError, ValueError):
                console.print(f"  {key}: {value}", style="dim")
        elif isinstance(value, list):
            console.print(f"  {key}: {', '.join(str(v) for v in value)}", style="dim")
        elif isinstance(value, str) and len(value) > 100:
            # Truncate long strings
            console.print(f"  {key}: {value[:100]}... ({len(value)} chars)", style="dim")
        else:
            console.print(f"  {key}: {value}", style="dim")
