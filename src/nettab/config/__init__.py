"""
Configuration management for nettab.

Supports multiple configuration sources in order of priority:
1. Environment variables (highest priority)
2. Project .env file (./.env)
3. Global config file (~/.nettab/config.yml)
4. Default values (lowest priority)
"""

from .env_loader import (
    global_config_dir,
    load_env_file,
    load_global_config,
    load_project_config,
)
from .getters import (
    MODES,
    ModeSettings,
    get_config,
    get_flag,
    get_max_logs,
    get_mode,
    is_production,
    is_verbose,
    mode_from_name,
    resolve_mode,
)

__all__ = [
    # env_loader
    "global_config_dir",
    "load_env_file",
    "load_global_config",
    "load_project_config",
    # getters
    "MODES",
    "ModeSettings",
    "get_config",
    "get_flag",
    "get_max_logs",
    "get_mode",
    "is_production",
    "is_verbose",
    "mode_from_name",
    "resolve_mode",
]
