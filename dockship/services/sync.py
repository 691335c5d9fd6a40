"""Mirror the local source tree into the remote application directory."""

import logging
import posixpath
from pathlib import Path

from dockship.errors import ExitCode, SyncError
from dockship.schemas.deployment import Policy, StageReport, StepResult
from dockship.services.remote import RemoteExecutor
from dockship.services.shell import stream_process

logger = logging.getLogger(__name__)

# Names of app directories this tool created, one per line, beside them
APP_REGISTRY = ".dockship-apps"

PREPARE_DIRECTORY = """
$SUDO mkdir -p "$APP_PATH"
$SUDO chown -R "$(id -un):$(id -gn)" "$APP_PATH"
if ! $SUDO grep -qxF "$APP_NAME" "$REGISTRY" 2> /dev/null; then
  echo "$APP_NAME" | $SUDO tee -a "$REGISTRY" > /dev/null
fi
"""


class ArtifactSynchronizer:
    """Make ``remote_path`` an exact mirror of ``source_dir``, deletions included."""

    def __init__(
        self,
        executor: RemoteExecutor,
        source_dir: Path,
        remote_path: str,
        exclude: list[str] | None = None,
    ) -> None:
        self.executor = executor
        self.source_dir = source_dir
        self.remote_path = remote_path
        self.exclude = list(exclude or [])
        self.report = StageReport("sync")

    def rsync_command(self, dry_run: bool = False, destination: str | None = None) -> list[str]:
        # Trailing slashes: copy the tree's contents, not the directory itself
        cmd = ["rsync", "-az", "--delete", "--partial", "-e", self.executor.rsync_shell()]
        if dry_run:
            cmd += ["--dry-run", "--itemize-changes"]
        for pattern in self.exclude:
            cmd += ["--exclude", pattern]
        if destination is None:
            destination = f"{self.executor.target.address}:{self.remote_path}"
        cmd += [f"{self.source_dir}/", f"{destination}/"]
        return cmd

    def _rsync(self, name: str, dry_run: bool) -> StepResult:
        exit_status, output = stream_process(self.rsync_command(dry_run=dry_run))
        return self.report.add(StepResult(name=name, policy=Policy.FATAL, exit_status=exit_status, output=output))

    def prepare_remote_directory(self) -> None:
        logger.info(f"Preparing remote directory {self.remote_path}...")
        result = self.executor.execute_or_raise(
            self.executor.script(
                PREPARE_DIRECTORY,
                APP_PATH=self.remote_path,
                APP_NAME=posixpath.basename(self.remote_path),
                REGISTRY=posixpath.join(posixpath.dirname(self.remote_path), APP_REGISTRY),
            ),
            name="prepare-remote-directory",
            error=SyncError,
            message="Failed to prepare remote app directory",
            exit_code=ExitCode.REMOTE_DIRECTORY,
        )
        self.report.add(result)

    def preview(self) -> StepResult:
        """Log what the transfer would change without touching remote files."""
        logger.info(f"Performing dry-run rsync to {self.remote_path}...")
        result = self._rsync("sync-preview", dry_run=True)
        if not result.ok:
            raise SyncError(f"rsync dry-run failed (exit status {result.exit_status})", exit_code=ExitCode.SYNC_PREVIEW)
        logger.info("Dry-run completed successfully.")
        return result

    def transfer(self) -> StepResult:
        logger.info(f"Syncing project files to {self.executor.target.host}:{self.remote_path} ...")
        result = self._rsync("sync-transfer", dry_run=False)
        if not result.ok:
            raise SyncError(f"File transfer failed (exit status {result.exit_status})", exit_code=ExitCode.TRANSFER)
        logger.info("Files transferred successfully.")
        return result

    def synchronize(self) -> StageReport:
        """Prepare the directory, preview the changes, then transfer."""
        self.report = StageReport("sync")
        self.prepare_remote_directory()
        self.preview()
        self.transfer()
        return self.report
