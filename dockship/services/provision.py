"""Bring a Debian/Ubuntu host up to the runtime the deployment needs.

Each component is handled as "detect -> install if absent -> enable/start".
Re-running the whole stage is always safe: detection short-circuits installs
that are already satisfied and enabling a running service is a no-op.
"""

import logging
from dataclasses import dataclass

from dockship.errors import ProvisionError
from dockship.schemas.deployment import (
    ComponentStatus,
    Policy,
    RemoteEnvironmentState,
    StageReport,
)
from dockship.services.remote import RemoteExecutor

logger = logging.getLogger(__name__)


# =============================================================================
# Remote scripts
# =============================================================================

REFRESH_INDEX = """
$SUDO apt-get update -y
$SUDO apt-get install -y ca-certificates curl gnupg lsb-release rsync
"""

DOCKER_INSTALL = """
$SUDO install -m 0755 -d /etc/apt/keyrings
curl -fsSL https://download.docker.com/linux/ubuntu/gpg | $SUDO gpg --batch --yes --dearmor -o /etc/apt/keyrings/docker.gpg
echo "deb [arch=$(dpkg --print-architecture) signed-by=/etc/apt/keyrings/docker.gpg] https://download.docker.com/linux/ubuntu $(lsb_release -cs) stable" \
  | $SUDO tee /etc/apt/sources.list.d/docker.list > /dev/null
$SUDO apt-get update -y
$SUDO apt-get install -y docker-ce docker-ce-cli containerd.io docker-buildx-plugin docker-compose-plugin
"""

COMPOSE_INSTALL = """
$SUDO apt-get install -y docker-compose-plugin
"""

NGINX_INSTALL = """
$SUDO apt-get install -y nginx
"""

SERVICE_START = """
$SUDO systemctl enable "$SERVICE"
$SUDO systemctl start "$SERVICE"
"""

DOCKER_GROUP = """
REMOTE_USER="$(id -un)"
if id -nG "$REMOTE_USER" | grep -qw docker; then
  echo "GROUP_PRESENT"
else
  $SUDO usermod -aG docker "$REMOTE_USER"
  echo "GROUP_ADDED"
fi
"""

VERSIONS = """
$SUDO docker --version || echo "Docker not installed properly"
$SUDO docker compose version || echo "Docker Compose not installed properly"
nginx -v 2>&1 || echo "Nginx not installed properly"
"""


@dataclass(frozen=True)
class Component:
    """One runtime component and how to detect, install and start it."""

    name: str
    detect: str
    install: str
    service: str | None = None


COMPONENTS = (
    Component("docker", detect="command -v docker", install=DOCKER_INSTALL, service="docker"),
    Component("compose", detect="$SUDO docker compose version", install=COMPOSE_INSTALL),
    Component("nginx", detect="command -v nginx", install=NGINX_INSTALL, service="nginx"),
)


class HostProvisioner:
    """Ensure container engine, compose plugin and Nginx are installed and running."""

    def __init__(self, executor: RemoteExecutor, components: tuple[Component, ...] = COMPONENTS) -> None:
        self.executor = executor
        self.components = components
        self.report = StageReport("provision")

    def _fatal(self, body: str, name: str, message: str, **params: object) -> None:
        result = self.executor.execute_or_raise(
            self.executor.script(body, DEBIAN_FRONTEND="noninteractive", **params),
            name=name,
            error=ProvisionError,
            message=message,
        )
        self.report.add(result)

    def _advisory(self, body: str, name: str, **params: object):
        result = self.executor.execute(
            self.executor.script(body, **params),
            name=name,
            policy=Policy.ADVISORY,
            quiet=True,
        )
        return self.report.add(result)

    def refresh_package_index(self) -> None:
        logger.info("Refreshing package index and installing prerequisites...")
        self._fatal(REFRESH_INDEX, "refresh-package-index", "Package index refresh failed")

    def ensure_component(self, component: Component) -> ComponentStatus:
        """Detect, install if absent, then enable and start one component."""
        present = self._advisory(component.detect, f"detect-{component.name}").ok
        if present:
            logger.info(f"{component.name}: already installed")
        else:
            logger.info(f"{component.name}: not found, installing...")
            self._fatal(component.install, f"install-{component.name}", f"Installing {component.name} failed")

        running = None
        if component.service:
            self._fatal(
                SERVICE_START,
                f"start-{component.service}",
                f"Enabling/starting {component.service} failed",
                SERVICE=component.service,
            )
            running = self._advisory(
                'systemctl is-active --quiet "$SERVICE"',
                f"active-{component.service}",
                SERVICE=component.service,
            ).ok
        return ComponentStatus(present_before=present, installed=True, running=running)

    def ensure_docker_group(self) -> bool:
        """Grant the SSH user docker access.

        Group changes only apply to new login sessions, so the current run keeps
        invoking docker through sudo.

        Returns:
            True if the user was added to the group during this run.
        """
        result = self.executor.execute_or_raise(
            self.executor.script(DOCKER_GROUP),
            name="docker-group",
            error=ProvisionError,
            message="Adding the remote user to the docker group failed",
        )
        self.report.add(result)
        added = "GROUP_ADDED" in result.output
        if added:
            logger.info("Added remote user to the docker group (effective from the next login session).")
        return added

    def provision(self) -> RemoteEnvironmentState:
        """Run the whole provisioning stage.

        Returns:
            The per-component observations of this pass.
        """
        logger.info("Starting remote environment preparation...")
        self.report = StageReport("provision")
        state = RemoteEnvironmentState()

        self.refresh_package_index()
        for component in self.components:
            state.components[component.name] = self.ensure_component(component)
        self.ensure_docker_group()
        self._advisory(VERSIONS, "installed-versions")

        if state.newly_installed:
            logger.info(f"Installed: {', '.join(state.newly_installed)}")
        logger.info("Remote environment preparation completed successfully.")
        return state
