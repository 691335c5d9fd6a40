"""The staged deployment pipeline.

Stages run strictly in sequence; each stage's preconditions are the previous
stage's postconditions. The order lives in TRANSITIONS rather than in the
control flow, so a run can start part-way through (``start_at``) after an
earlier failure has been fixed.

Known limitation: nothing prevents two runs from targeting the same app on
the same host at the same time. Within one run, stop-before-start ordering
keeps container and proxy names unique; concurrent runs race with
last-writer-wins semantics and are unsupported.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from dockship.errors import DeployError, ParameterError
from dockship.schemas.deployment import (
    DeploymentDescriptor,
    Policy,
    RemoteEnvironmentState,
    RunConfig,
    StageReport,
    StepResult,
)
from dockship.services.containers import ContainerDeployer
from dockship.services.provision import HostProvisioner
from dockship.services.proxy import ProxyConfigurer
from dockship.services.reconcile import Reconciler
from dockship.services.remote import RemoteExecutor
from dockship.services.source import SourceFetcher
from dockship.services.sync import ArtifactSynchronizer
from dockship.services.validation import DeploymentValidator, ValidationReport

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    FETCH_SOURCE = "fetch-source"
    CHECK_CONNECTIVITY = "check-connectivity"
    PROVISION_HOST = "provision-host"
    SYNC_ARTIFACTS = "sync-artifacts"
    DEPLOY_CONTAINERS = "deploy-containers"
    CONFIGURE_PROXY = "configure-proxy"
    VALIDATE = "validate"
    RECONCILE = "reconcile"
    DONE = "done"
    FAILED = "failed"


# Successor of each stage on success; any fatal error moves to FAILED
TRANSITIONS: dict[Stage, Stage] = {
    Stage.FETCH_SOURCE: Stage.CHECK_CONNECTIVITY,
    Stage.CHECK_CONNECTIVITY: Stage.PROVISION_HOST,
    Stage.PROVISION_HOST: Stage.SYNC_ARTIFACTS,
    Stage.SYNC_ARTIFACTS: Stage.DEPLOY_CONTAINERS,
    Stage.DEPLOY_CONTAINERS: Stage.CONFIGURE_PROXY,
    Stage.CONFIGURE_PROXY: Stage.VALIDATE,
    Stage.VALIDATE: Stage.RECONCILE,
    Stage.RECONCILE: Stage.DONE,
}

TERMINAL = frozenset({Stage.DONE, Stage.FAILED})

# Stages that produce state every later stage needs, so they are never skipped
ALWAYS_RUN = frozenset({Stage.FETCH_SOURCE, Stage.CHECK_CONNECTIVITY})


def stage_order() -> list[Stage]:
    """Stages in execution order, derived from the transition table."""
    order = []
    stage = Stage.FETCH_SOURCE
    while stage not in TERMINAL:
        order.append(stage)
        stage = TRANSITIONS[stage]
    return order


@dataclass
class PipelineResult:
    state: Stage = Stage.FETCH_SOURCE
    completed: list[Stage] = field(default_factory=list)
    skipped: list[Stage] = field(default_factory=list)
    reports: dict[Stage, StageReport] = field(default_factory=dict)
    failed_stage: Stage | None = None
    error: DeployError | None = None
    environment: RemoteEnvironmentState | None = None
    validation: ValidationReport | None = None

    @property
    def ok(self) -> bool:
        return self.state is Stage.DONE


class Pipeline:
    """Drive one deployment run through the stage transition table."""

    def __init__(
        self,
        config: RunConfig,
        executor: RemoteExecutor | None = None,
        fetcher: SourceFetcher | None = None,
    ) -> None:
        self.config = config
        self.executor = executor or RemoteExecutor(config.target, use_sudo=config.settings.remote.use_sudo)
        self.fetcher = fetcher or SourceFetcher(
            config.source,
            default_key=config.target.key_path,
            trust_on_first_use=config.target.trust_on_first_use,
        )
        self.source_dir: Path | None = None
        self.descriptor: DeploymentDescriptor | None = None
        self.result = PipelineResult()
        self._handlers: dict[Stage, Callable[[], StageReport | None]] = {
            Stage.FETCH_SOURCE: self.fetch_source,
            Stage.CHECK_CONNECTIVITY: self.check_connectivity,
            Stage.PROVISION_HOST: self.provision_host,
            Stage.SYNC_ARTIFACTS: self.sync_artifacts,
            Stage.DEPLOY_CONTAINERS: self.deploy_containers,
            Stage.CONFIGURE_PROXY: self.configure_proxy,
            Stage.VALIDATE: self.validate,
            Stage.RECONCILE: self.reconcile,
        }

    def run(self, start_at: Stage = Stage.FETCH_SOURCE) -> PipelineResult:
        """Run every stage from ``start_at`` to the end.

        Stages before ``start_at`` are skipped, except the ones in ALWAYS_RUN.

        Raises:
            DeployError: The first fatal error, after it has been recorded in
                ``self.result``.
        """
        if start_at in TERMINAL:
            raise ParameterError(f"Cannot start a run at '{start_at.value}'")
        order = stage_order()
        first = order.index(start_at)

        self.result = PipelineResult()
        stage = Stage.FETCH_SOURCE
        while stage not in TERMINAL:
            self.result.state = stage
            if order.index(stage) < first and stage not in ALWAYS_RUN:
                logger.info(f"Skipping stage {stage.value} (resuming at {start_at.value})")
                self.result.skipped.append(stage)
                stage = TRANSITIONS[stage]
                continue

            logger.info(f"Starting stage: {stage.value}")
            try:
                report = self._handlers[stage]()
            except DeployError as exc:
                self.result.failed_stage = stage
                self.result.error = exc
                self.result.state = Stage.FAILED
                logger.error(f"Stage {stage.value} failed: {exc.message}")
                raise
            if report is not None:
                self.result.reports[stage] = report
            self.result.completed.append(stage)
            logger.info(f"Stage {stage.value} completed.")
            stage = TRANSITIONS[stage]

        self.result.state = stage
        return self.result

    # =========================================================================
    # Stage handlers
    # =========================================================================

    def fetch_source(self) -> StageReport:
        settings = self.config.settings
        report = StageReport(Stage.FETCH_SOURCE.value)
        if settings.workspace.source_dir is not None:
            source_dir = settings.workspace.source_dir
            if not source_dir.is_dir():
                raise ParameterError(f"Source directory {source_dir} does not exist")
            logger.info(f"Using existing checkout at {source_dir}")
        else:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            workdir = settings.workspace.dir / f"workspace_{timestamp}"
            logger.info(f"Created local workspace: {workdir}")
            source_dir = self.fetcher.fetch(workdir / "repo")
            report.add(StepResult(name="fetch", policy=Policy.FATAL, exit_status=0))

        self.source_dir = source_dir
        self.descriptor = SourceFetcher.inspect(source_dir)
        return report

    def check_connectivity(self) -> StageReport:
        report = StageReport(Stage.CHECK_CONNECTIVITY.value)
        report.add(self.executor.check_connectivity())
        return report

    def provision_host(self) -> StageReport:
        provisioner = HostProvisioner(self.executor)
        self.result.environment = provisioner.provision()
        return provisioner.report

    def sync_artifacts(self) -> StageReport:
        synchronizer = ArtifactSynchronizer(
            self.executor,
            self.source_dir,
            self.config.app_path,
            exclude=self.config.settings.sync.exclude,
        )
        return synchronizer.synchronize()

    def deploy_containers(self) -> StageReport:
        deployer = ContainerDeployer(
            self.executor,
            self.config.app,
            self.config.app_path,
            self.descriptor,
            startup_wait=self.config.settings.deploy.startup_wait,
        )
        return deployer.deploy()

    def configure_proxy(self) -> StageReport:
        return ProxyConfigurer(self.executor, self.config.app, self.config.settings).configure()

    def validate(self) -> StageReport:
        validator = DeploymentValidator(self.executor, self.config.settings.proxy.public_port)
        self.result.validation = validator.validate()
        return validator.report

    def reconcile(self) -> StageReport:
        settings = self.config.settings
        reconciler = Reconciler(
            self.executor,
            sites_enabled=settings.proxy.sites_enabled,
            retention_hours=settings.reconcile.container_retention_hours,
        )
        return reconciler.reconcile()
