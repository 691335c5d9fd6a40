"""Destructive teardown of everything the pipeline creates on a host.

WARNING: container and image removal is intentionally unscoped. Every
container and every image on the target host is force-removed, not only the
ones this tool started. Proxy sites are limited to those carrying this
tool's managed marker. Application directories are limited to those the sync
stage registered, those named by a managed site, and any app named explicitly.

Nothing is touched on the remote host until the operator has typed the
confirmation literal.
"""

import logging
import posixpath
import re

from dockship.config.schema import DockshipConfig
from dockship.errors import CleanupDeclined
from dockship.schemas.deployment import Policy, StageReport
from dockship.services.proxy import MANAGED_MARKER
from dockship.services.remote import RemoteExecutor
from dockship.services.sync import APP_REGISTRY

logger = logging.getLogger(__name__)

CONFIRMATION_LITERAL = "CLEANUP"
_APP_NAME = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")

REMOVE_CONTAINERS = """
IDS="$($SUDO docker ps -aq)"
if [ -n "$IDS" ]; then
  $SUDO docker rm -f $IDS
fi
"""

REMOVE_IMAGES = """
IDS="$($SUDO docker images -q | sort -u)"
if [ -n "$IDS" ]; then
  $SUDO docker rmi -f $IDS
fi
"""

REMOVE_MANAGED_SITES = """
shopt -s nullglob
for site in "$SITES_AVAILABLE"/*.conf; do
  first="$(head -n 1 "$site")"
  case "$first" in
    "# $MARKER app="*)
      echo "MANAGED_APP ${first##*app=}"
      $SUDO rm -f "$SITES_ENABLED/$(basename "$site")" "$site" "$site".bak_*
      ;;
  esac
done
"""

LIST_REGISTERED_APPS = """
if [ -f "$REGISTRY" ]; then
  sed -n 's/^/REGISTERED_APP /p' "$REGISTRY"
fi
"""

REMOVE_APP_DIRECTORIES = """
for app in $APPS; do
  echo "Removing $BASE_DIR/$app"
  $SUDO rm -rf "$BASE_DIR/$app"
done
$SUDO rm -f "$REGISTRY"
"""

RESTART_PROXY = """
if command -v nginx > /dev/null; then
  $SUDO nginx -t && $SUDO systemctl try-restart nginx
fi
"""


def require_confirmation(answer: str | None) -> None:
    """Raise CleanupDeclined unless ``answer`` is exactly the literal."""
    if (answer or "").strip() != CONFIRMATION_LITERAL:
        raise CleanupDeclined("Cleanup confirmation failed. Aborting.")


class CleanupOperator:
    """Tear down containers, images, managed proxy sites and app directories."""

    def __init__(
        self,
        executor: RemoteExecutor,
        settings: DockshipConfig,
        app_names: list[str] | None = None,
    ) -> None:
        self.executor = executor
        self.settings = settings
        self.app_names = list(app_names or [])
        self.report = StageReport("cleanup")

    def _step(self, body: str, name: str, **params: object):
        result = self.executor.execute(
            self.executor.script(body, **params),
            name=name,
            policy=Policy.ADVISORY,
        )
        return self.report.add(result)

    def run(self, confirmation: str | None) -> StageReport:
        """Perform the teardown after checking the confirmation literal.

        Every remote action is best-effort; a failure is logged and the next
        action still runs.

        Raises:
            CleanupDeclined: If the confirmation does not match, before any
                remote command is issued.
        """
        require_confirmation(confirmation)
        self.report = StageReport("cleanup")
        logger.info(f"Running remote cleanup on {self.executor.target.address} ...")

        self._step(REMOVE_CONTAINERS, "remove-all-containers")
        self._step(REMOVE_IMAGES, "remove-all-images")
        sites = self._step(
            REMOVE_MANAGED_SITES,
            "remove-managed-sites",
            SITES_AVAILABLE=self.settings.proxy.sites_available,
            SITES_ENABLED=self.settings.proxy.sites_enabled,
            MARKER=MANAGED_MARKER,
        )
        registry = posixpath.join(self.settings.remote.base_dir, APP_REGISTRY)
        registered = self._step(LIST_REGISTERED_APPS, "list-registered-apps", REGISTRY=registry)

        apps = self._collect_app_names(sites.output + "\n" + registered.output)
        if apps:
            self._step(
                REMOVE_APP_DIRECTORIES,
                "remove-app-directories",
                APPS=" ".join(apps),
                BASE_DIR=self.settings.remote.base_dir,
                REGISTRY=registry,
            )
        else:
            logger.info("No deployed application directories identified.")
        self._step(RESTART_PROXY, "restart-proxy")

        if self.report.advisory_failures:
            logger.warning(
                "Remote cleanup finished with non-fatal issues: "
                f"{', '.join(step.name for step in self.report.advisory_failures)}"
            )
        else:
            logger.info("Remote cleanup finished.")
        return self.report

    def _collect_app_names(self, output: str) -> list[str]:
        names = list(self.app_names)
        for line in output.splitlines():
            if line.startswith(("MANAGED_APP ", "REGISTERED_APP ")):
                names.append(line.split(" ", 1)[1].strip())
        # Only names that could have been produced by AppIdentity reach rm -rf
        safe = []
        for name in names:
            if _APP_NAME.match(name) and name not in safe:
                safe.append(name)
            elif not _APP_NAME.match(name):
                logger.warning(f"Skipping unexpected application name {name!r}")
        return safe
