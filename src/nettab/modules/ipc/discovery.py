"""On-disk pointer viewers use to find a running instance."""

import getpass
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveryInfo:
    pid: int
    port: int
    created_at: int

    def to_dict(self) -> dict[str, int]:
        return {"pid": self.pid, "port": self.port, "createdAt": self.created_at}


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "default"


def default_discovery_path() -> Path:
    """``<tempdir>/nettab-<user>.json``."""
    return Path(tempfile.gettempdir()) / f"nettab-{_current_user()}.json"


def _load(path: Path) -> DiscoveryInfo | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    pid, port = data.get("pid"), data.get("port")
    if not isinstance(pid, int) or not isinstance(port, int) or pid <= 0 or not 0 < port < 65536:
        return None
    created_at = data.get("createdAt")
    return DiscoveryInfo(pid, port, created_at if isinstance(created_at, int) else 0)


def read_discovery(path: Path | None = None) -> DiscoveryInfo | None:
    """Return the live discovery record, or None when absent, malformed or stale."""
    info = _load(path or default_discovery_path())
    if info is None:
        return None
    if not psutil.pid_exists(info.pid):
        logger.debug("Discovery record for pid %d is stale", info.pid)
        return None
    return info


def write_discovery(port: int, path: Path | None = None, pid: int | None = None) -> DiscoveryInfo | None:
    """Publish ``port`` for this process.

    The file is replaced atomically. A record owned by another live process
    is left alone and None is returned.
    """
    path = path or default_discovery_path()
    pid = pid if pid is not None else os.getpid()
    current = read_discovery(path)
    if current is not None and current.pid != pid:
        logger.warning("Another live instance (pid %d) owns %s", current.pid, path)
        return None

    info = DiscoveryInfo(pid=pid, port=port, created_at=int(time.time() * 1000))
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=".nettab-", suffix=".json", dir=path.parent)
    except OSError as exc:
        logger.warning("Could not write discovery file %s: %s", path, exc)
        return None
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(info.to_dict(), f)
        os.replace(tmp_name, path)
    except OSError as exc:
        logger.warning("Could not write discovery file %s: %s", path, exc)
        Path(tmp_name).unlink(missing_ok=True)
        return None
    return info


def remove_discovery(path: Path | None = None, pid: int | None = None) -> bool:
    """Delete the record only if it still belongs to ``pid`` (default: us)."""
    path = path or default_discovery_path()
    pid = pid if pid is not None else os.getpid()
    info = _load(path)
    if info is None or info.pid != pid:
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.debug("Could not remove discovery file %s: %s", path, exc)
        return False
    return True
