"""Environment file and configuration file loading."""

from pathlib import Path
from typing import Any

import yaml


def global_config_dir() -> Path:
    return Path.home() / ".nettab"


def load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from .env file."""
    env_vars = {}
    if env_path.exists():
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line.startswith("export "):
                    line = line[len("export ") :].lstrip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    # Remove quotes if present
                    value = value.strip().strip("\"'")
                    env_vars[key.strip()] = value
    return env_vars


def load_global_config() -> dict[str, Any]:
    """Load global configuration from ~/.nettab/config.yml."""
    config_path = global_config_dir() / "config.yml"
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        return data if isinstance(data, dict) else {}
    return {}


def load_project_config(project_dir: Path | None = None) -> dict[str, str]:
    """Load the ``.env`` file of ``project_dir`` (default: the working directory)."""
    return load_env_file((project_dir or Path.cwd()) / ".env")
