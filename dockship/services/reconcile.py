"""Best-effort tidy-up after a deployment.

Each action runs as its own remote session so one failure cannot stop the
rest, and no failure here changes the run's exit status.
"""

import logging

from dockship.schemas.deployment import Policy, StageReport
from dockship.services.remote import RemoteExecutor

logger = logging.getLogger(__name__)

ACTIONS = (
    ("remove-broken-site-links", '$SUDO find "$SITES_ENABLED" -xtype l -delete'),
    (
        "prune-exited-containers",
        '$SUDO docker container prune -f --filter "until=${RETENTION_HOURS}h"',
    ),
    ("prune-dangling-images", "$SUDO docker image prune -f"),
    ("prune-unused-networks", "$SUDO docker network prune -f"),
    ("nginx-syntax-check", "$SUDO nginx -t"),
)


class Reconciler:
    """Converge the host toward a minimal-garbage baseline."""

    def __init__(
        self,
        executor: RemoteExecutor,
        sites_enabled: str = "/etc/nginx/sites-enabled",
        retention_hours: int = 168,
    ) -> None:
        self.executor = executor
        self.sites_enabled = sites_enabled
        self.retention_hours = retention_hours

    def reconcile(self) -> StageReport:
        logger.info("Performing final tidy checks...")
        report = StageReport("reconcile")
        for name, body in ACTIONS:
            script = self.executor.script(
                body,
                SITES_ENABLED=self.sites_enabled,
                RETENTION_HOURS=self.retention_hours,
            )
            report.add(self.executor.execute(script, name=name, policy=Policy.ADVISORY))

        if report.advisory_failures:
            logger.warning(
                f"Remote finalization had non-fatal issues: "
                f"{', '.join(step.name for step in report.advisory_failures)}"
            )
        else:
            logger.info("Final tidy done.")
        return report
