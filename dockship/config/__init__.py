"""dockship configuration module.

This module provides TOML-based configuration with environment variable overrides.

Configuration is loaded from the following locations (in order of priority):
1. Environment variables (highest priority)
2. ./dockship.toml (working directory)
3. ~/.config/dockship/dockship.toml (user config)
4. /etc/dockship/dockship.toml (system config)

Run parameters (repository, host, key, port) may be preset in a .env file.
"""

from dockship.config.loader import load_config, load_run_parameters
from dockship.config.schema import (
    DeployConfig,
    DockshipConfig,
    LoggingConfig,
    ProxyConfig,
    ReconcileConfig,
    RemoteConfig,
    SSHConfig,
    SyncConfig,
    WorkspaceConfig,
)

__all__ = [
    "DeployConfig",
    "DockshipConfig",
    "LoggingConfig",
    "ProxyConfig",
    "ReconcileConfig",
    "RemoteConfig",
    "SSHConfig",
    "SyncConfig",
    "WorkspaceConfig",
    "load_config",
    "load_run_parameters",
]
