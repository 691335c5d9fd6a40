"""Run-scoped values shared by every pipeline stage.

The input models are frozen pydantic models: they are built once from the
collected run parameters and passed by reference to each stage. Stage results
are plain dataclasses.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from dockship.config.schema import DockshipConfig

APP_NAME_MAX_LENGTH = 63
_UNSAFE_CHARS = re.compile(r"[^a-z0-9-]+")
_SCP_STYLE = re.compile(r"^[\w.-]+@[\w.-]+:")

COMPOSE_FILENAMES = (
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
)
DOCKERFILE = "Dockerfile"


def derive_app_name(repo_url: str) -> str:
    """Derive a filesystem- and DNS-safe application name from a repository URL.

    >>> derive_app_name("https://example.com/org/My_Service.git")
    'my-service'
    """
    tail = repo_url.strip().rstrip("/")
    tail = re.split(r"[/:]", tail)[-1]
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    name = _UNSAFE_CHARS.sub("-", tail.lower()).strip("-")
    return name[:APP_NAME_MAX_LENGTH].rstrip("-")


class DeploymentTarget(BaseModel):
    """One remote machine, reached over SSH with an explicit key."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(min_length=1)
    user: str = Field(min_length=1)
    key_path: Path
    trust_on_first_use: bool = True
    connect_timeout: int = Field(default=10, ge=1)

    @property
    def address(self) -> str:
        return f"{self.user}@{self.host}"


class SourceSpec(BaseModel):
    """Where the application source comes from."""

    model_config = ConfigDict(frozen=True)

    repo_url: str = Field(min_length=1)
    branch: str = "main"
    token: SecretStr | None = None
    # Key used for SSH fetches; falls back to the deployment key
    ssh_key_path: Path | None = None

    @field_validator("branch")
    @classmethod
    def default_branch(cls, value: str) -> str:
        return value.strip() or "main"

    @property
    def transport(self) -> Literal["https", "ssh", "local"]:
        url = self.repo_url
        if url.startswith(("http://", "https://")):
            return "https"
        if url.startswith("ssh://") or _SCP_STYLE.match(url):
            return "ssh"
        return "local"


class AppIdentity(BaseModel):
    """Deterministic name and port that key every remote artifact."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(pattern=r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$", max_length=APP_NAME_MAX_LENGTH)
    port: int = Field(ge=1, le=65535)

    @classmethod
    def from_repo_url(cls, repo_url: str, port: int) -> "AppIdentity":
        return cls(name=derive_app_name(repo_url), port=port)

    @property
    def container_name(self) -> str:
        return self.name

    @property
    def image_tag(self) -> str:
        return f"{self.name}:latest"

    @property
    def site_name(self) -> str:
        return f"{self.name}.conf"

    def remote_path(self, base_dir: str = "/opt") -> str:
        return str(PurePosixPath(base_dir) / self.name)


class ProxySite(BaseModel):
    """The Nginx site definition owned by one application."""

    model_config = ConfigDict(frozen=True)

    config_path: str
    link_path: str
    upstream_port: int
    public_port: int

    @classmethod
    def for_app(cls, app: AppIdentity, settings: DockshipConfig) -> "ProxySite":
        return cls(
            config_path=str(PurePosixPath(settings.proxy.sites_available) / app.site_name),
            link_path=str(PurePosixPath(settings.proxy.sites_enabled) / app.site_name),
            upstream_port=app.port,
            public_port=settings.proxy.public_port,
        )


class RunConfig(BaseModel):
    """Everything a run needs, constructed once before the first stage."""

    model_config = ConfigDict(frozen=True)

    target: DeploymentTarget
    source: SourceSpec
    app: AppIdentity
    settings: DockshipConfig = Field(default_factory=DockshipConfig)

    @property
    def app_path(self) -> str:
        return self.app.remote_path(self.settings.remote.base_dir)

    @property
    def proxy_site(self) -> ProxySite:
        return ProxySite.for_app(self.app, self.settings)


class DeploymentDescriptor(str, Enum):
    """How the application's containers are described in the source tree."""

    COMPOSE = "compose"
    SINGLE_CONTAINER = "single-container"


def detect_descriptor(tree: Path) -> DeploymentDescriptor | None:
    """Return the deployment mode for a source tree, compose taking precedence."""
    for filename in COMPOSE_FILENAMES:
        if (tree / filename).is_file():
            return DeploymentDescriptor.COMPOSE
    if (tree / DOCKERFILE).is_file():
        return DeploymentDescriptor.SINGLE_CONTAINER
    return None


class Policy(str, Enum):
    """Whether a failed step aborts the run or is only logged."""

    FATAL = "fatal"
    ADVISORY = "advisory"


@dataclass(frozen=True)
class StepResult:
    """Outcome of one remote or local command."""

    name: str
    policy: Policy
    exit_status: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    @property
    def advisory(self) -> bool:
        return self.policy is Policy.ADVISORY


@dataclass
class StageReport:
    """Ordered step results produced by one stage."""

    stage: str
    steps: list[StepResult] = field(default_factory=list)

    def add(self, result: StepResult) -> StepResult:
        self.steps.append(result)
        return result

    def step(self, name: str) -> StepResult | None:
        return next((s for s in self.steps if s.name == name), None)

    @property
    def advisory_failures(self) -> list[StepResult]:
        return [s for s in self.steps if s.advisory and not s.ok]

    @property
    def fatal_failures(self) -> list[StepResult]:
        return [s for s in self.steps if not s.advisory and not s.ok]


@dataclass(frozen=True)
class ComponentStatus:
    """Observed state of one runtime component on the remote host."""

    present_before: bool
    installed: bool
    running: bool | None = None


@dataclass
class RemoteEnvironmentState:
    """Per-component observations from one provisioning pass."""

    components: dict[str, ComponentStatus] = field(default_factory=dict)

    @property
    def newly_installed(self) -> list[str]:
        return [name for name, status in self.components.items() if not status.present_before]
