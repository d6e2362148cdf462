"""Process-wide activation: interceptor, store, IPC server and the chosen view."""

import atexit
import logging
import sys
import threading
from dataclasses import dataclass, field
from typing import Any

from rich.console import Console

from nettab.config import ModeSettings, get_max_logs, is_production, is_verbose, resolve_mode
from nettab.console import HeadlessPrinter, LiveRequestView
from nettab.modules.intercept import default_channel, default_interceptor
from nettab.modules.ipc import IpcHandle, start_ipc_server
from nettab.modules.store import RequestStore
from nettab.utils.debug import configure_logging

logger = logging.getLogger(__name__)

console = Console(stderr=True)


@dataclass
class Session:
    """Everything :func:`activate` started, torn down by :func:`deactivate`."""

    store: RequestStore
    mode: ModeSettings
    ipc: IpcHandle | None = None
    views: list[Any] = field(default_factory=list)


_session: Session | None = None
_lock = threading.Lock()


def get_session() -> Session | None:
    return _session


def get_store() -> RequestStore | None:
    return _session.store if _session is not None else None


def _is_tty() -> bool:
    return sys.stdout.isatty()


def activate(mode: ModeSettings | None = None, ipc: bool = True) -> Session | None:
    """Start capturing outbound HTTP for this process.

    Returns the running session, or None when ``NETTAB_ENV=production``.
    Calling it again returns the existing session.
    """
    global _session
    with _lock:
        if _session is not None:
            return _session
        if is_production():
            console.print(
                "[nettab] Running in production mode. Network interception is "
                'disabled for safety. Set NETTAB_ENV to something other than "production" '
                "to enable.",
                style="yellow",
                markup=False,
            )
            return None

        configure_logging(is_verbose())
        mode = mode or resolve_mode()
        store = RequestStore(default_channel, max_logs=get_max_logs())
        default_interceptor.install()
        session = Session(store=store, mode=mode)

        if ipc:
            try:
                session.ipc = start_ipc_server(store)
            except OSError as exc:
                logger.warning("IPC server unavailable, external viewers cannot connect: %s", exc)

        if mode.inline and _is_tty():
            view = LiveRequestView(store, subtitle="nettab")
            view.start()
            session.views.append(view)
        elif not mode.silent and (mode.headless_logs or not _is_tty()):
            console.print("[nettab] Running in headless mode (no inline UI).", markup=False)
            console.print("[nettab] Use `nettab view` to open the UI.", markup=False)
            printer = HeadlessPrinter(store)
            printer.start()
            session.views.append(printer)

        _session = session
        atexit.register(deactivate)
        logger.debug("nettab active (mode=%s)", mode)
        return session


def deactivate() -> None:
    """Stop views, the IPC server and the interceptor. Safe to call repeatedly."""
    global _session
    with _lock:
        session = _session
        if session is None:
            return
        _session = None
        atexit.unregister(deactivate)
        for view in reversed(session.views):
            view.stop()
        if session.ipc is not None:
            session.ipc.close()
        session.store.detach()
        default_interceptor.uninstall()
        logger.debug("nettab deactivated")
