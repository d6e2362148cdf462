"""Configuration getter functions."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .env_loader import load_global_config, load_project_config

MODES = ("inline", "headless", "headless-logs", "silent")
TRUTHY = ("1", "true")


def get_config(key: str, project_dir: Path | None = None, default: Any = None) -> Any:
    """
    Get configuration value with priority:
    1. Environment variable
    2. Project .env file
    3. Global config file
    4. Default value

    Args:
        key: Configuration key
        project_dir: Optional project directory
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    # 1. Check environment variable
    env_value = os.environ.get(key)
    if env_value:
        return env_value

    # 2. Check project .env file
    project_config = load_project_config(project_dir)
    if key in project_config:
        return project_config[key]

    # 3. Check global config
    global_config = load_global_config()
    if key in global_config:
        return global_config[key]

    # 4. Return default
    return default


def get_flag(key: str, project_dir: Path | None = None) -> bool:
    """True when ``key`` is set to ``1`` or ``true``."""
    value = get_config(key, project_dir)
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY if value is not None else False


def is_production(project_dir: Path | None = None) -> bool:
    """Interception stays off when NETTAB_ENV is ``production``."""
    return str(get_config("NETTAB_ENV", project_dir, default="")).strip().lower() == "production"


def get_mode(project_dir: Path | None = None) -> str:
    """Named mode from NETTAB_MODE, or an empty string."""
    mode = str(get_config("NETTAB_MODE", project_dir, default="")).strip().lower()
    return mode if mode in MODES else ""


def get_max_logs(project_dir: Path | None = None, default: int = 50) -> int:
    """Store capacity (NETTAB_MAX_LOGS); invalid values fall back to ``default``."""
    value = get_config("NETTAB_MAX_LOGS", project_dir)
    try:
        max_logs = int(value)
    except (TypeError, ValueError):
        return default
    return max_logs if max_logs > 0 else default


def is_verbose(project_dir: Path | None = None) -> bool:
    return get_flag("NETTAB_VERBOSE", project_dir)


@dataclass(frozen=True)
class ModeSettings:
    """How the auto-start entry point presents captured traffic."""

    inline: bool = False
    headless_logs: bool = False
    silent: bool = False


def resolve_mode(project_dir: Path | None = None) -> ModeSettings:
    """Combine NETTAB_MODE with the individual switches.

    ``headless`` implies ``silent``: no inline view and no log lines.
    """
    mode = get_mode(project_dir)
    headless = mode == "headless" or get_flag("NETTAB_HEADLESS", project_dir)
    return ModeSettings(
        inline=mode == "inline" or get_flag("NETTAB_INLINE_UI", project_dir),
        headless_logs=mode == "headless-logs" or get_flag("NETTAB_HEADLESS_LOGS", project_dir),
        silent=mode == "silent" or headless or get_flag("NETTAB_SILENT", project_dir),
    )


def mode_from_name(name: str) -> ModeSettings:
    """Settings for one named mode; raises ValueError for unknown names."""
    match name.strip().lower():
        case "inline":
            return ModeSettings(inline=True)
        case "headless-logs":
            return ModeSettings(headless_logs=True)
        case "headless" | "silent":
            return ModeSettings(silent=True)
        case _:
            raise ValueError(f"Unknown mode: {name!r} (expected one of {', '.join(MODES)})")
