"""nettab package."""

from nettab.modules.intercept import Interceptor, install, is_active, uninstall

__all__ = ["Interceptor", "app", "install", "is_active", "main", "uninstall"]


def __getattr__(name: str):
    if name in ("app", "main"):
        from nettab.cli import app, main

        return {"app": app, "main": main}[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(__all__)
