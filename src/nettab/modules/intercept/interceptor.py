"""Interceptor handle owning the process's outbound HTTP entry points."""

import logging

from nettab.modules.intercept.events import EventChannel
from nettab.modules.intercept.http_client_hooks import HTTPClientHooks
from nettab.modules.intercept.httpx_hooks import HTTPXHooks

logger = logging.getLogger(__name__)


class Interceptor:
    """Installs the ``http.client`` and ``httpx`` hooks as one unit.

    Events for every observed request go to ``channel``. Only one
    interceptor may own the entry points at a time; installing a second one
    raises ``RuntimeError`` and leaves the first untouched.
    """

    def __init__(self, channel: EventChannel | None = None):
        self.channel = channel if channel is not None else EventChannel()
        self._hooks = [HTTPClientHooks(self.channel), HTTPXHooks(self.channel)]
        self._active = False

    def install(self) -> None:
        """Start intercepting. Calling it again while active does nothing."""
        if self._active:
            return
        done = []
        try:
            for hooks in self._hooks:
                hooks.install()
                done.append(hooks)
        except Exception:
            for hooks in reversed(done):
                hooks.uninstall()
            raise
        self._active = True
        logger.debug("Interceptor installed")

    def uninstall(self) -> None:
        """Restore the original entry points. Safe to call when inactive."""
        if not self._active:
            return
        for hooks in reversed(self._hooks):
            hooks.uninstall()
        self._active = False
        logger.debug("Interceptor uninstalled")

    def is_active(self) -> bool:
        return self._active

    def __enter__(self) -> "Interceptor":
        self.install()
        return self

    def __exit__(self, *exc_info) -> None:
        self.uninstall()


default_channel = EventChannel()
default_interceptor = Interceptor(default_channel)


def install() -> None:
    default_interceptor.install()


def uninstall() -> None:
    default_interceptor.uninstall()


def is_active() -> bool:
    return default_interceptor.is_active()
