"""Configuration loader for dockship.

Loads configuration from TOML files and run parameters from .env files.
Environment variables can override any documented configuration value.
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

from dockship.config.schema import DockshipConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "DOCKSHIP"

# Run parameters that may be preset instead of prompted for
RUN_PARAMETER_KEYS = {
    f"{ENV_PREFIX}_REPO_URL": "repo_url",
    f"{ENV_PREFIX}_TOKEN": "token",
    f"{ENV_PREFIX}_BRANCH": "branch",
    f"{ENV_PREFIX}_REMOTE_USER": "user",
    f"{ENV_PREFIX}_REMOTE_HOST": "host",
    f"{ENV_PREFIX}_SSH_KEY": "key_path",
    f"{ENV_PREFIX}_APP_PORT": "port",
}

_INT_KEYS = {
    "public_port",
    "startup_wait",
    "container_retention_hours",
    "connect_timeout",
    "retention_days",
}
_BOOL_KEYS = {"use_sudo", "trust_on_first_use", "disable_default_site"}
_LIST_KEYS = {"exclude"}


def get_config_search_paths() -> list[Path]:
    """Get the list of paths to search for configuration files.

    Returns paths in priority order (first found wins):
    1. ./dockship.toml (working directory)
    2. ~/.config/dockship/dockship.toml (user config)
    3. /etc/dockship/dockship.toml (system config)
    """
    return [
        Path.cwd() / "dockship.toml",
        Path.home() / ".config" / "dockship" / "dockship.toml",
        Path("/etc/dockship/dockship.toml"),
    ]


def find_config_file() -> Path | None:
    """Find the first existing config file from search paths."""
    for path in get_config_search_paths():
        if path.exists() and path.is_file():
            logger.debug(f"Found config file: {path}")
            return path
    return None


def load_toml_file(path: Path) -> dict[str, Any]:
    """Load a TOML file and return its contents as a dictionary."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def apply_env_overrides(config_dict: dict[str, Any], prefix: str = ENV_PREFIX) -> None:
    """Apply environment variable overrides to configuration dictionary.

    Environment variables are mapped as follows:
    - DOCKSHIP_PROXY_PUBLIC_PORT -> config_dict["proxy"]["public_port"]
    - DOCKSHIP_REMOTE_BASE_DIR -> config_dict["remote"]["base_dir"]
    - etc.

    Note: This modifies config_dict in place.
    """
    env_mappings = {
        f"{prefix}_REMOTE_BASE_DIR": ("remote", "base_dir"),
        f"{prefix}_REMOTE_USE_SUDO": ("remote", "use_sudo"),
        f"{prefix}_PROXY_PUBLIC_PORT": ("proxy", "public_port"),
        f"{prefix}_PUBLIC_PORT": ("proxy", "public_port"),  # Shorthand
        f"{prefix}_PROXY_SITES_AVAILABLE": ("proxy", "sites_available"),
        f"{prefix}_PROXY_SITES_ENABLED": ("proxy", "sites_enabled"),
        f"{prefix}_PROXY_DISABLE_DEFAULT_SITE": ("proxy", "disable_default_site"),
        f"{prefix}_DEPLOY_STARTUP_WAIT": ("deploy", "startup_wait"),
        f"{prefix}_RECONCILE_CONTAINER_RETENTION_HOURS": (
            "reconcile",
            "container_retention_hours",
        ),
        f"{prefix}_SSH_TRUST_ON_FIRST_USE": ("ssh", "trust_on_first_use"),
        f"{prefix}_SSH_CONNECT_TIMEOUT": ("ssh", "connect_timeout"),
        f"{prefix}_SYNC_EXCLUDE": ("sync", "exclude"),
        f"{prefix}_LOGGING_LOG_DIR": ("logging", "log_dir"),
        f"{prefix}_LOG_DIR": ("logging", "log_dir"),  # Shorthand
        f"{prefix}_LOGGING_RETENTION_DAYS": ("logging", "retention_days"),
        f"{prefix}_LOGGING_LEVEL": ("logging", "level"),
        f"{prefix}_WORKSPACE_DIR": ("workspace", "dir"),
        f"{prefix}_WORKSPACE_SOURCE_DIR": ("workspace", "source_dir"),
    }

    for env_var, path in env_mappings.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        section, key = path
        config_dict.setdefault(section, {})

        if key in _INT_KEYS:
            config_dict[section][key] = int(value)
        elif key in _BOOL_KEYS:
            config_dict[section][key] = value.lower() in ("true", "1", "yes")
        elif key in _LIST_KEYS:
            config_dict[section][key] = [item.strip() for item in value.split(",") if item.strip()]
        else:
            config_dict[section][key] = value


def load_config(config_file: Path | None = None) -> DockshipConfig:
    """Load configuration from TOML file with environment variable overrides.

    Args:
        config_file: Optional path to config file. If not provided,
                     searches default locations.

    Returns:
        DockshipConfig instance with all settings loaded.
    """
    config_dict: dict[str, Any] = {}

    if config_file is None:
        config_file = find_config_file()

    if config_file and config_file.exists():
        logger.info(f"Loading config from: {config_file}")
        config_dict = load_toml_file(config_file)
    else:
        logger.debug("No config file found, using defaults with env overrides")

    apply_env_overrides(config_dict)

    return DockshipConfig(**config_dict)


def load_run_parameters(env_file: Path | None = None) -> dict[str, str]:
    """Collect preset run parameters from a .env file and the environment.

    Environment variables take precedence over file values. Keys in the
    returned dict are the CLI parameter names (repo_url, host, port, ...).
    """
    if env_file is None:
        env_file = Path.cwd() / ".env"

    file_values: dict[str, str | None] = {}
    if env_file.exists():
        logger.debug(f"Loading run parameters from: {env_file}")
        file_values = dotenv_values(env_file)

    params: dict[str, str] = {}
    for env_key, param in RUN_PARAMETER_KEYS.items():
        value = os.environ.get(env_key) or file_values.get(env_key)
        if value:
            params[param] = value
    return params
