"""Tests for the dockship configuration system."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from dockship.config.loader import (
    apply_env_overrides,
    find_config_file,
    get_config_search_paths,
    load_config,
    load_run_parameters,
    load_toml_file,
)
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


class TestSchemaDefaults:
    """Test default values in schema models."""

    def test_remote_config_defaults(self):
        """Test RemoteConfig has correct defaults."""
        config = RemoteConfig()
        assert config.base_dir == "/opt"
        assert config.use_sudo is True

    def test_proxy_config_defaults(self):
        """Test ProxyConfig has correct defaults."""
        config = ProxyConfig()
        assert config.public_port == 80
        assert config.sites_available == "/etc/nginx/sites-available"
        assert config.sites_enabled == "/etc/nginx/sites-enabled"
        assert config.disable_default_site is True

    def test_deploy_and_reconcile_defaults(self):
        """Test DeployConfig and ReconcileConfig have correct defaults."""
        assert DeployConfig().startup_wait == 5
        assert ReconcileConfig().container_retention_hours == 168

    def test_ssh_config_defaults(self):
        """Test SSHConfig trusts on first use by default."""
        config = SSHConfig()
        assert config.trust_on_first_use is True
        assert config.connect_timeout == 10

    def test_sync_config_mirrors_everything(self):
        """Test SyncConfig excludes nothing unless configured."""
        assert SyncConfig().exclude == []

    def test_logging_and_workspace_defaults(self):
        """Test LoggingConfig and WorkspaceConfig have correct defaults."""
        logging_config = LoggingConfig()
        assert logging_config.log_dir == Path("logs")
        assert logging_config.retention_days == 30
        assert logging_config.level == "INFO"
        workspace = WorkspaceConfig()
        assert workspace.dir == Path(".")
        assert workspace.source_dir is None

    def test_dockship_config_defaults(self):
        """Test DockshipConfig aggregates every section."""
        config = DockshipConfig()
        assert isinstance(config.remote, RemoteConfig)
        assert isinstance(config.proxy, ProxyConfig)
        assert isinstance(config.deploy, DeployConfig)
        assert isinstance(config.reconcile, ReconcileConfig)
        assert isinstance(config.ssh, SSHConfig)
        assert isinstance(config.sync, SyncConfig)
        assert isinstance(config.logging, LoggingConfig)
        assert isinstance(config.workspace, WorkspaceConfig)

    def test_public_port_out_of_range_rejected(self):
        """Test an out-of-range public port fails validation."""
        with pytest.raises(ValidationError):
            ProxyConfig(public_port=70000)

    def test_unknown_log_level_rejected(self):
        """Test log level is restricted to the documented values."""
        with pytest.raises(ValidationError):
            LoggingConfig(level="TRACE")


class TestConfigSearchPaths:
    """Test configuration file search paths."""

    def test_config_search_paths_order(self):
        """Test config search paths are in correct priority order."""
        paths = get_config_search_paths()
        assert len(paths) == 3
        assert paths[0] == Path.cwd() / "dockship.toml"
        assert paths[1] == Path.home() / ".config" / "dockship" / "dockship.toml"
        assert paths[2] == Path("/etc/dockship/dockship.toml")


class TestTomlLoading:
    """Test TOML file loading."""

    def test_load_toml_file(self, tmp_path):
        """Test loading a valid TOML file."""
        toml_content = """
[remote]
base_dir = "/srv/apps"
use_sudo = false

[proxy]
public_port = 8080
"""
        config_file = tmp_path / "dockship.toml"
        config_file.write_text(toml_content)

        data = load_toml_file(config_file)
        assert data["remote"]["base_dir"] == "/srv/apps"
        assert data["remote"]["use_sudo"] is False
        assert data["proxy"]["public_port"] == 8080

    def test_load_config_from_file(self, tmp_path):
        """Test load_config with a specific file."""
        toml_content = """
[deploy]
startup_wait = 15

[sync]
exclude = [".git/", "node_modules/"]
"""
        config_file = tmp_path / "dockship.toml"
        config_file.write_text(toml_content)

        config = load_config(config_file)
        assert config.deploy.startup_wait == 15
        assert config.sync.exclude == [".git/", "node_modules/"]
        # Defaults should still apply
        assert config.proxy.public_port == 80
        assert config.remote.base_dir == "/opt"

    def test_load_config_rejects_invalid_values(self, tmp_path):
        """Test invalid values surface as a validation error."""
        config_file = tmp_path / "dockship.toml"
        config_file.write_text("[ssh]\nconnect_timeout = 0\n")

        with pytest.raises(ValidationError):
            load_config(config_file)

    def test_load_config_without_file_uses_defaults(self, tmp_path, monkeypatch):
        """Test defaults are used when no config file exists anywhere."""
        monkeypatch.chdir(tmp_path)
        with patch("dockship.config.loader.find_config_file", return_value=None):
            config = load_config()
        assert config == DockshipConfig()


class TestEnvOverrides:
    """Test environment variable overrides."""

    def test_apply_proxy_overrides(self):
        """Test proxy configuration overrides."""
        config_dict = {}

        with patch.dict(
            os.environ,
            {
                "DOCKSHIP_PROXY_PUBLIC_PORT": "8080",
                "DOCKSHIP_PROXY_SITES_ENABLED": "/tmp/enabled",
            },
        ):
            apply_env_overrides(config_dict)

        assert config_dict["proxy"]["public_port"] == 8080
        assert config_dict["proxy"]["sites_enabled"] == "/tmp/enabled"

    def test_public_port_shorthand(self):
        """Test DOCKSHIP_PUBLIC_PORT maps to proxy.public_port."""
        config_dict = {}

        with patch.dict(os.environ, {"DOCKSHIP_PUBLIC_PORT": "8443"}):
            apply_env_overrides(config_dict)

        assert config_dict["proxy"]["public_port"] == 8443

    def test_apply_boolean_override_true(self):
        """Test boolean overrides with 'true' value."""
        config_dict = {}

        with patch.dict(os.environ, {"DOCKSHIP_REMOTE_USE_SUDO": "true"}):
            apply_env_overrides(config_dict)

        assert config_dict["remote"]["use_sudo"] is True

    def test_apply_boolean_override_false(self):
        """Test boolean overrides with 'false' value."""
        config_dict = {"ssh": {"trust_on_first_use": True}}

        with patch.dict(os.environ, {"DOCKSHIP_SSH_TRUST_ON_FIRST_USE": "false"}):
            apply_env_overrides(config_dict)

        assert config_dict["ssh"]["trust_on_first_use"] is False

    def test_apply_list_override(self):
        """Test comma-separated list overrides."""
        config_dict = {}

        with patch.dict(os.environ, {"DOCKSHIP_SYNC_EXCLUDE": ".git/, dist/ ,"}):
            apply_env_overrides(config_dict)

        assert config_dict["sync"]["exclude"] == [".git/", "dist/"]

    def test_env_overrides_file_values(self, tmp_path):
        """Test environment variables take precedence over the TOML file."""
        config_file = tmp_path / "dockship.toml"
        config_file.write_text("[deploy]\nstartup_wait = 15\n")

        with patch.dict(os.environ, {"DOCKSHIP_DEPLOY_STARTUP_WAIT": "2"}):
            config = load_config(config_file)

        assert config.deploy.startup_wait == 2


class TestRunParameters:
    """Test preset run parameters from .env files and the environment."""

    def test_load_run_parameters_from_file(self, tmp_path):
        """Test parameters are read from a .env file."""
        env_file = tmp_path / ".env"
        env_file.write_text(
            "DOCKSHIP_REPO_URL=https://example.com/acme/shop.git\n"
            "DOCKSHIP_REMOTE_HOST=203.0.113.10\n"
            "DOCKSHIP_APP_PORT=3000\n"
        )

        params = load_run_parameters(env_file)
        assert params == {
            "repo_url": "https://example.com/acme/shop.git",
            "host": "203.0.113.10",
            "port": "3000",
        }

    def test_environment_wins_over_file(self, tmp_path):
        """Test environment variables override .env values."""
        env_file = tmp_path / ".env"
        env_file.write_text("DOCKSHIP_REMOTE_USER=deploy\n")

        with patch.dict(os.environ, {"DOCKSHIP_REMOTE_USER": "ubuntu"}):
            params = load_run_parameters(env_file)

        assert params["user"] == "ubuntu"

    def test_missing_file_is_not_an_error(self, tmp_path):
        """Test a missing .env file yields no parameters."""
        assert load_run_parameters(tmp_path / "missing.env") == {}

    def test_empty_values_are_ignored(self, tmp_path):
        """Test blank entries do not count as preset."""
        env_file = tmp_path / ".env"
        env_file.write_text("DOCKSHIP_TOKEN=\n")

        assert "token" not in load_run_parameters(env_file)


class TestFindConfigFile:
    """Test find_config_file function."""

    def test_find_config_file_in_cwd(self, tmp_path, monkeypatch):
        """Test finding config file in current directory."""
        config_file = tmp_path / "dockship.toml"
        config_file.write_text("[proxy]\npublic_port = 80\n")
        monkeypatch.chdir(tmp_path)

        assert find_config_file() == config_file

    def test_find_config_file_none_found(self, tmp_path):
        """Test None is returned when no search path exists."""
        with patch(
            "dockship.config.loader.get_config_search_paths",
            return_value=[tmp_path / "nope.toml"],
        ):
            assert find_config_file() is None
