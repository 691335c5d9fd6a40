"""Post-deployment health checks.

Every check is informational. By this stage the deployment has already been
committed, so failures are reported to the operator and never rolled back.
"""

import logging
from dataclasses import dataclass, field

from dockship.errors import ValidationSessionError
from dockship.schemas.deployment import Policy, StageReport
from dockship.services.remote import SSH_TRANSPORT_FAILURE, RemoteExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Check:
    name: str
    body: str
    passed: str
    failed: str


CHECKS = (
    Check(
        "docker-active",
        '$SUDO systemctl is-active --quiet docker',
        passed="Docker: Active",
        failed="Docker: Inactive",
    ),
    Check(
        "nginx-active",
        '$SUDO systemctl is-active --quiet nginx',
        passed="Nginx: Active",
        failed="Nginx: Inactive",
    ),
    Check(
        "running-containers",
        '$SUDO docker ps --format "table {{.Names}}\\t{{.Status}}\\t{{.Ports}}"',
        passed="Container listing retrieved",
        failed="Could not list running containers",
    ),
    Check(
        "proxy-reachable",
        'curl -fs "http://localhost:${PUBLIC_PORT}" > /dev/null',
        passed="Application reachable via Nginx on port {port}",
        failed="Application not responding through Nginx on port {port}",
    ),
)


@dataclass
class ValidationReport:
    """Pass/fail per check."""

    results: dict[str, bool] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return all(self.results.values())

    @property
    def failures(self) -> list[str]:
        return [name for name, ok in self.results.items() if not ok]


class DeploymentValidator:
    """Probe service status and the public endpoint on the remote host."""

    def __init__(self, executor: RemoteExecutor, public_port: int = 80) -> None:
        self.executor = executor
        self.public_port = public_port
        self.report = StageReport("validate")

    def validate(self) -> ValidationReport:
        """Run all checks, logging each outcome distinctly.

        Raises:
            ValidationSessionError: Only if no check could reach the host.
        """
        logger.info("Starting deployment validation...")
        self.report = StageReport("validate")
        outcome = ValidationReport()

        for check in CHECKS:
            result = self.executor.execute(
                self.executor.script(check.body, PUBLIC_PORT=self.public_port),
                name=check.name,
                policy=Policy.ADVISORY,
            )
            self.report.add(result)
            outcome.results[check.name] = result.ok
            if result.ok:
                logger.info(check.passed.format(port=self.public_port))
            else:
                logger.warning(check.failed.format(port=self.public_port))

        if all(step.exit_status == SSH_TRANSPORT_FAILURE for step in self.report.steps):
            raise ValidationSessionError("Deployment validation could not reach the host")

        if outcome.passed:
            logger.info("Validation complete: all checks passed.")
        else:
            logger.warning(f"Validation complete with failures: {', '.join(outcome.failures)}")
        return outcome
