"""Zero-configuration activation.

Importing this module starts intercepting outbound HTTP for the process::

    import nettab.start  # noqa: F401

Mode selection comes from ``NETTAB_*`` settings (see :mod:`nettab.config`).
"""

from nettab.autostart import activate, deactivate, get_store

session = activate()

__all__ = ["activate", "deactivate", "get_store", "session"]
