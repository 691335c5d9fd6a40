"""Pydantic models for dockship configuration.

These models define the structure of dockship.toml.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class RemoteConfig(BaseModel):
    """Remote host layout."""

    base_dir: str = "/opt"
    use_sudo: bool = True


class ProxyConfig(BaseModel):
    """Nginx reverse proxy configuration."""

    public_port: int = Field(default=80, ge=1, le=65535)
    sites_available: str = "/etc/nginx/sites-available"
    sites_enabled: str = "/etc/nginx/sites-enabled"
    # The stock default site also claims port 80 as default_server
    disable_default_site: bool = True


class DeployConfig(BaseModel):
    """Container deployment configuration."""

    # Seconds to wait before probing the freshly started app
    startup_wait: int = Field(default=5, ge=0)


class ReconcileConfig(BaseModel):
    """Post-deployment tidy-up configuration."""

    container_retention_hours: int = Field(default=168, ge=0)


class SSHConfig(BaseModel):
    """SSH transport configuration."""

    trust_on_first_use: bool = True
    connect_timeout: int = Field(default=10, ge=1)


class SyncConfig(BaseModel):
    """File synchronisation configuration."""

    exclude: list[str] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Run log configuration."""

    log_dir: Path = Field(default_factory=lambda: Path("logs"))
    retention_days: int = Field(default=30, ge=0)
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class WorkspaceConfig(BaseModel):
    """Local workspace configuration."""

    dir: Path = Field(default_factory=lambda: Path("."))
    # Existing checkout to deploy instead of fetching the repository
    source_dir: Path | None = None


class DockshipConfig(BaseModel):
    """Main dockship configuration loaded from dockship.toml."""

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    deploy: DeployConfig = Field(default_factory=DeployConfig)
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)
    ssh: SSHConfig = Field(default_factory=SSHConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
