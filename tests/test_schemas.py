"""Tests for the run-scoped data model."""

import pytest
from pydantic import ValidationError

from dockship.config.schema import DockshipConfig
from dockship.schemas.deployment import (
    APP_NAME_MAX_LENGTH,
    AppIdentity,
    DeploymentDescriptor,
    Policy,
    ProxySite,
    SourceSpec,
    StageReport,
    StepResult,
    derive_app_name,
    detect_descriptor,
)


class TestDeriveAppName:
    """Test application name derivation from repository URLs."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://github.com/acme/shop.git", "shop"),
            ("https://github.com/acme/shop", "shop"),
            ("https://github.com/acme/shop/", "shop"),
            ("git@github.com:acme/Shop_Front.git", "shop-front"),
            ("git@github.com:shop.git", "shop"),
            ("ssh://git@example.com:2222/acme/api.v2.git", "api-v2"),
            ("/srv/git/My Service.git", "my-service"),
        ],
    )
    def test_derivation(self, url, expected):
        """Test the last path segment becomes a safe lowercase name."""
        assert derive_app_name(url) == expected

    def test_same_url_same_name(self):
        """Test derivation is deterministic."""
        url = "https://example.com/org/Repo.git"
        assert derive_app_name(url) == derive_app_name(url)

    def test_long_name_truncated(self):
        """Test names are capped and never end with a separator."""
        name = derive_app_name("https://example.com/" + "a" * 62 + "_b" * 10 + ".git")
        assert len(name) <= APP_NAME_MAX_LENGTH
        assert not name.endswith("-")

    def test_unusable_url_yields_empty_name(self):
        """Test a URL without a usable segment yields an empty name."""
        assert derive_app_name("https://example.com/___.git") == ""


class TestAppIdentity:
    """Test the names every remote artifact is keyed by."""

    def test_derived_names(self):
        """Test container, image and site names follow the app name."""
        app = AppIdentity.from_repo_url("https://example.com/acme/shop.git", 3000)
        assert app.name == "shop"
        assert app.container_name == "shop"
        assert app.image_tag == "shop:latest"
        assert app.site_name == "shop.conf"
        assert app.remote_path() == "/opt/shop"
        assert app.remote_path("/srv/apps/") == "/srv/apps/shop"

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_port_range(self, port):
        """Test ports outside 1..65535 are rejected."""
        with pytest.raises(ValidationError):
            AppIdentity(name="shop", port=port)

    def test_empty_name_rejected(self):
        """Test a URL that derives an empty name cannot build an identity."""
        with pytest.raises(ValidationError):
            AppIdentity.from_repo_url("https://example.com/---.git", 3000)

    def test_identity_is_immutable(self):
        """Test the identity cannot change once built."""
        app = AppIdentity(name="shop", port=3000)
        with pytest.raises(ValidationError):
            app.port = 4000


class TestSourceSpec:
    """Test source specification parsing."""

    @pytest.mark.parametrize(
        "url,transport",
        [
            ("https://github.com/acme/shop.git", "https"),
            ("http://git.internal/acme/shop.git", "https"),
            ("git@github.com:acme/shop.git", "ssh"),
            ("ssh://git@github.com/acme/shop.git", "ssh"),
            ("/srv/git/shop.git", "local"),
        ],
    )
    def test_transport(self, url, transport):
        """Test transport is inferred from the URL form."""
        assert SourceSpec(repo_url=url).transport == transport

    def test_blank_branch_defaults_to_main(self):
        """Test an empty branch falls back to main."""
        assert SourceSpec(repo_url="https://x/y.git", branch="  ").branch == "main"

    def test_token_is_secret(self):
        """Test the token never appears in the model's repr."""
        spec = SourceSpec(repo_url="https://x/y.git", token="ghp_secret")
        assert "ghp_secret" not in repr(spec)
        assert spec.token.get_secret_value() == "ghp_secret"


class TestProxySite:
    """Test proxy site paths."""

    def test_for_app(self):
        """Test the site lives under the configured directories."""
        settings = DockshipConfig(proxy={"public_port": 8080})
        site = ProxySite.for_app(AppIdentity(name="shop", port=3000), settings)
        assert site.config_path == "/etc/nginx/sites-available/shop.conf"
        assert site.link_path == "/etc/nginx/sites-enabled/shop.conf"
        assert site.upstream_port == 3000
        assert site.public_port == 8080


class TestRunConfig:
    """Test the run context."""

    def test_app_path_uses_base_dir(self, run_config):
        """Test the remote app path joins base dir and app name."""
        assert run_config.app_path == "/opt/sample"
        assert run_config.proxy_site.upstream_port == 3000


class TestDetectDescriptor:
    """Test container descriptor detection."""

    def test_dockerfile(self, tmp_path):
        """Test a Dockerfile alone selects single-container mode."""
        (tmp_path / "Dockerfile").write_text("FROM scratch\n")
        assert detect_descriptor(tmp_path) is DeploymentDescriptor.SINGLE_CONTAINER

    @pytest.mark.parametrize(
        "filename",
        ["docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml"],
    )
    def test_compose_files(self, tmp_path, filename):
        """Test every compose file name selects compose mode."""
        (tmp_path / filename).write_text("services: {}\n")
        assert detect_descriptor(tmp_path) is DeploymentDescriptor.COMPOSE

    def test_compose_wins_over_dockerfile(self, tmp_path):
        """Test compose takes precedence when both are present."""
        (tmp_path / "Dockerfile").write_text("FROM scratch\n")
        (tmp_path / "docker-compose.yml").write_text("services: {}\n")
        assert detect_descriptor(tmp_path) is DeploymentDescriptor.COMPOSE

    def test_no_descriptor(self, tmp_path):
        """Test None when neither file exists."""
        (tmp_path / "README.md").write_text("hello\n")
        assert detect_descriptor(tmp_path) is None

    def test_nested_dockerfile_ignored(self, tmp_path):
        """Test only the tree root is inspected."""
        (tmp_path / "docker").mkdir()
        (tmp_path / "docker" / "Dockerfile").write_text("FROM scratch\n")
        assert detect_descriptor(tmp_path) is None


class TestStageReport:
    """Test step bookkeeping."""

    def test_failures_split_by_policy(self):
        """Test advisory and fatal failures are reported separately."""
        report = StageReport("x")
        report.add(StepResult("a", Policy.FATAL, 0))
        report.add(StepResult("b", Policy.ADVISORY, 1))
        report.add(StepResult("c", Policy.FATAL, 2))

        assert [s.name for s in report.advisory_failures] == ["b"]
        assert [s.name for s in report.fatal_failures] == ["c"]
        assert report.step("a").ok
        assert report.step("missing") is None
