"""Build and (re)start the application's containers on the remote host.

Ordering per attempt:

    absent       -> building -> starting -> running
    absent       -> building -> failed
    running(old) -> building -> stopping_old -> starting -> running(new)
    running(old) -> building -> failed            (old instance untouched)

Images are built before the previous instance is stopped, so a broken build
never takes the running deployment down. The previous instance is removed
before the new one starts, so two containers never share the app's name.
"""

import logging
from enum import Enum

from dockship.errors import ContainerDeployError
from dockship.schemas.deployment import (
    AppIdentity,
    DeploymentDescriptor,
    Policy,
    StageReport,
    StepResult,
)
from dockship.services.remote import RemoteExecutor

logger = logging.getLogger(__name__)


class ContainerState(str, Enum):
    ABSENT = "absent"
    RUNNING_OLD = "running_old"
    BUILDING = "building"
    STOPPING_OLD = "stopping_old"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"


# =============================================================================
# Remote scripts
# =============================================================================

OBSERVE = """
$SUDO docker ps -q --filter "name=^/${CONTAINER}$"
$SUDO docker ps -q --filter "label=com.docker.compose.project=${PROJECT}"
"""

COMPOSE_BUILD = """
cd "$APP_PATH"
$SUDO docker compose -p "$PROJECT" build
"""

COMPOSE_DOWN = """
cd "$APP_PATH"
$SUDO docker compose -p "$PROJECT" down --remove-orphans
"""

COMPOSE_UP = """
cd "$APP_PATH"
$SUDO docker compose -p "$PROJECT" up -d
"""

IMAGE_BUILD = """
cd "$APP_PATH"
$SUDO docker build --build-arg PORT="$APP_PORT" -t "$IMAGE" .
"""

REMOVE_CONTAINER = """
if [ -n "$($SUDO docker ps -aq --filter "name=^/${CONTAINER}$")" ]; then
  $SUDO docker stop "$CONTAINER"
  $SUDO docker rm "$CONTAINER"
fi
"""

RETIRE_COMPOSE_PROJECT = """
IDS="$($SUDO docker ps -aq --filter "label=com.docker.compose.project=${PROJECT}")"
if [ -n "$IDS" ]; then
  $SUDO docker rm -f $IDS
fi
"""

CONTAINER_RUN = """
$SUDO docker run -d \
  --name "$CONTAINER" \
  --restart unless-stopped \
  -p "$APP_PORT:$APP_PORT" \
  -e PORT="$APP_PORT" \
  "$IMAGE"
"""

LIST_CONTAINERS = """
$SUDO docker ps --format "table {{.Names}}\\t{{.Status}}\\t{{.Ports}}"
"""

PROBE_APP = """
sleep "$STARTUP_WAIT"
curl -fs "http://localhost:${APP_PORT}" > /dev/null
"""


class ContainerDeployer:
    """Deploy one application under its AppIdentity-derived names."""

    def __init__(
        self,
        executor: RemoteExecutor,
        app: AppIdentity,
        app_path: str,
        descriptor: DeploymentDescriptor | None,
        startup_wait: int = 5,
    ) -> None:
        self.executor = executor
        self.app = app
        self.app_path = app_path
        self.descriptor = descriptor
        self.startup_wait = startup_wait
        self.history: list[ContainerState] = []
        self.report = StageReport("deploy")

    @property
    def state(self) -> ContainerState | None:
        return self.history[-1] if self.history else None

    def _transition(self, state: ContainerState) -> None:
        logger.debug(f"{self.app.name}: {self.state} -> {state}")
        self.history.append(state)

    def _script(self, body: str):
        return self.executor.script(
            body,
            APP_PATH=self.app_path,
            APP_PORT=self.app.port,
            CONTAINER=self.app.container_name,
            IMAGE=self.app.image_tag,
            PROJECT=self.app.name,
            STARTUP_WAIT=self.startup_wait,
        )

    def _run(self, body: str, name: str, policy: Policy) -> StepResult:
        result = self.executor.execute(self._script(body), name=name, policy=policy)
        return self.report.add(result)

    def _fatal(self, body: str, name: str, message: str) -> StepResult:
        result = self._run(body, name, Policy.FATAL)
        if not result.ok:
            self._transition(ContainerState.FAILED)
            raise ContainerDeployError(f"{message} (exit status {result.exit_status})")
        return result

    def observe(self) -> ContainerState:
        """Record whether a previous instance is currently running."""
        result = self.executor.execute(
            self._script(OBSERVE), name="observe-existing", policy=Policy.ADVISORY, quiet=True
        )
        self.report.add(result)
        running = result.ok and bool(result.output.strip())
        state = ContainerState.RUNNING_OLD if running else ContainerState.ABSENT
        self._transition(state)
        return state

    def deploy(self) -> StageReport:
        """Run one deployment attempt.

        Raises:
            ContainerDeployError: If no descriptor was found, or the build or
                start step failed.
        """
        self.history = []
        self.report = StageReport("deploy")
        if self.descriptor is None:
            raise ContainerDeployError(
                "No Dockerfile or docker-compose.yml found. Deployment aborted.",
                hint="Add a Dockerfile or a docker-compose.yml to the repository root.",
            )

        logger.info(f"Deploying {self.app.name} ({self.descriptor.value}) from {self.app_path}...")
        previous = self.observe()

        if self.descriptor is DeploymentDescriptor.COMPOSE:
            self._deploy_compose(previous)
        else:
            self._deploy_single(previous)

        self._transition(ContainerState.RUNNING)
        self._run(LIST_CONTAINERS, "list-containers", Policy.ADVISORY)
        self.probe()
        logger.info("Application deployment completed successfully.")
        return self.report

    def _deploy_compose(self, previous: ContainerState) -> None:
        self._transition(ContainerState.BUILDING)
        self._fatal(COMPOSE_BUILD, "compose-build", "docker compose build failed")

        if previous is ContainerState.RUNNING_OLD:
            self._transition(ContainerState.STOPPING_OLD)
        self._run(REMOVE_CONTAINER, "remove-old-container", Policy.ADVISORY)
        self._run(COMPOSE_DOWN, "compose-down", Policy.ADVISORY)

        self._transition(ContainerState.STARTING)
        self._fatal(COMPOSE_UP, "compose-up", "docker compose up failed")

    def _deploy_single(self, previous: ContainerState) -> None:
        self._transition(ContainerState.BUILDING)
        self._fatal(IMAGE_BUILD, "image-build", "docker build failed")

        if previous is ContainerState.RUNNING_OLD:
            self._transition(ContainerState.STOPPING_OLD)
        self._run(RETIRE_COMPOSE_PROJECT, "retire-compose-project", Policy.ADVISORY)
        self._run(REMOVE_CONTAINER, "remove-old-container", Policy.ADVISORY)

        self._transition(ContainerState.STARTING)
        self._fatal(CONTAINER_RUN, "container-run", "docker run failed")

    def probe(self) -> bool:
        """Check the app answers on its internal port; a miss is only a warning."""
        logger.info(f"Waiting {self.startup_wait}s, then testing http://localhost:{self.app.port} on the host...")
        result = self._run(PROBE_APP, "probe-app", Policy.ADVISORY)
        if result.ok:
            logger.info(f"Application reachable on port {self.app.port}.")
        else:
            logger.warning("Application not responding yet.")
        return result.ok
