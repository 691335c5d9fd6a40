"""Fatal deployment errors and the process exit codes they map to.

Every fatal error carries a remediation hint that the CLI prints next to the
error message. Advisory failures are never raised; they are recorded in the
stage report and logged as warnings.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes, one per fatal stage category."""

    OK = 0
    INVALID_PARAMETERS = 10
    INVALID_PORT = 12
    CLEANUP_DECLINED = 17
    CLONE_HTTPS_TOKEN = 20
    CLONE_HTTPS = 21
    CLONE_SSH = 22
    CONNECTIVITY = 23
    SYNC_PREVIEW = 24
    PROVISION = 30
    REMOTE_DIRECTORY = 39
    TRANSFER = 40
    DEPLOY = 41
    PROXY = 50
    VALIDATION = 60
    INTERRUPTED = 130


class DeployError(Exception):
    """Base class for errors that abort the run."""

    exit_code: ExitCode = ExitCode.INVALID_PARAMETERS
    hint: str = ""

    def __init__(
        self,
        message: str,
        *,
        exit_code: ExitCode | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code
        if hint is not None:
            self.hint = hint

    @property
    def message(self) -> str:
        return self.args[0] if self.args else ""


class ParameterError(DeployError):
    exit_code = ExitCode.INVALID_PARAMETERS
    hint = "Re-run with all required parameters (see --help)."


class CloneError(DeployError):
    exit_code = ExitCode.CLONE_HTTPS
    hint = "Check the repository URL, the branch name and your network access."


class ConnectivityError(DeployError):
    exit_code = ExitCode.CONNECTIVITY
    hint = "Check SSH key, username, host IP, or firewall."


class SyncError(DeployError):
    exit_code = ExitCode.TRANSFER
    hint = "Check that rsync is installed locally and on the remote host."


class ProvisionError(DeployError):
    exit_code = ExitCode.PROVISION
    hint = "Check sudo rights and outbound network access on the remote host."


class ContainerDeployError(DeployError):
    exit_code = ExitCode.DEPLOY
    hint = (
        "Inspect the remote build output above; "
        "the previous deployment, if any, was left running."
    )


class ProxyError(DeployError):
    exit_code = ExitCode.PROXY
    hint = "Run 'sudo nginx -t' on the remote host to see the rejected directive."


class ValidationSessionError(DeployError):
    exit_code = ExitCode.VALIDATION
    hint = "The host stopped answering over SSH after deployment; check it manually."


class CleanupDeclined(DeployError):
    exit_code = ExitCode.CLEANUP_DECLINED
    hint = "Type CLEANUP (uppercase) to confirm the teardown."
