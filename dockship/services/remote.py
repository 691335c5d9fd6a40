"""SSH command execution against the deployment target.

Every remote-facing stage goes through RemoteExecutor:
- Single inline commands (``ssh host <command>``)
- Multi-line scripts run as one ``bash -s`` session, so ``cd``, exported
  variables and fail-fast semantics hold across the whole body
- The rsync transport string, so file sync uses the same key and host-key
  policy as every other remote call
"""

import logging
import re
import shlex
from dataclasses import dataclass, field

from dockship.errors import ConnectivityError, DeployError, ExitCode
from dockship.schemas.deployment import DeploymentTarget, Policy, StepResult
from dockship.services.shell import stream_process

logger = logging.getLogger(__name__)

SCRIPT_PREAMBLE = "set -euo pipefail"
_ENV_NAME = re.compile(r"^[A-Z_][A-Z0-9_]*$")

# ssh exits with 255 when the connection itself fails
SSH_TRANSPORT_FAILURE = 255


@dataclass(frozen=True)
class RemoteScript:
    """A static bash body plus the parameters it reads from its environment.

    Parameters are exported as shell-quoted assignments ahead of the body.
    The body refers to them as ordinary variables and is never rewritten.
    """

    body: str
    env: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for key in self.env:
            if not _ENV_NAME.match(key):
                raise ValueError(f"Invalid script parameter name: {key!r}")

    def render(self) -> str:
        exports = [f"export {key}={shlex.quote(str(value))}" for key, value in self.env.items()]
        return "\n".join([SCRIPT_PREAMBLE, *exports, self.body.strip(), ""])


class RemoteExecutor:
    """Run commands and scripts on one DeploymentTarget over SSH."""

    def __init__(self, target: DeploymentTarget, use_sudo: bool = True) -> None:
        self.target = target
        self.sudo = "sudo" if use_sudo else ""

    # =========================================================================
    # Transport
    # =========================================================================

    def ssh_options(self, connect_timeout: int | None = None) -> list[str]:
        host_key_policy = "accept-new" if self.target.trust_on_first_use else "yes"
        options = [
            "-i", str(self.target.key_path),
            "-o", "BatchMode=yes",
            "-o", "IdentitiesOnly=yes",
            "-o", f"StrictHostKeyChecking={host_key_policy}",
        ]
        if connect_timeout is not None:
            options += ["-o", f"ConnectTimeout={connect_timeout}"]
        return options

    def ssh_command(self, remote_cmd: str, connect_timeout: int | None = None) -> list[str]:
        return ["ssh", *self.ssh_options(connect_timeout), self.target.address, remote_cmd]

    def rsync_shell(self) -> str:
        """The ``rsync -e`` value carrying the same key and host-key policy."""
        return shlex.join(["ssh", *self.ssh_options()])

    # =========================================================================
    # Execution
    # =========================================================================

    def script(self, body: str, **params: object) -> RemoteScript:
        """Build a RemoteScript; ``SUDO`` is always available to the body."""
        env = {"SUDO": self.sudo}
        env.update({key: str(value) for key, value in params.items()})
        return RemoteScript(body=body, env=env)

    def execute(
        self,
        command: str | RemoteScript,
        *,
        name: str,
        policy: Policy = Policy.FATAL,
        quiet: bool = False,
        connect_timeout: int | None = None,
    ) -> StepResult:
        """Run a command or script remotely, streaming its output.

        A non-zero exit status is returned, not raised; callers decide whether
        it is fatal.
        """
        if isinstance(command, RemoteScript):
            ssh_cmd = self.ssh_command("bash -s", connect_timeout)
            input_text = command.render()
            display = f"<script {name}>"
        else:
            ssh_cmd = self.ssh_command(command, connect_timeout)
            input_text = None
            display = command[:80] + "..." if len(command) > 80 else command

        logger.debug(f"{self.target.address} $ {display}")
        exit_status, output = stream_process(ssh_cmd, input_text=input_text, quiet=quiet)
        result = StepResult(name=name, policy=policy, exit_status=exit_status, output=output)

        if not result.ok:
            if policy is Policy.ADVISORY:
                logger.warning(f"{name}: exited with {exit_status} (non-fatal)")
            else:
                logger.error(f"{name}: exited with {exit_status}")
        return result

    def execute_or_raise(
        self,
        command: str | RemoteScript,
        *,
        name: str,
        error: type[DeployError],
        message: str,
        exit_code: ExitCode | None = None,
    ) -> StepResult:
        """Run a fatal step and raise ``error`` if it fails."""
        result = self.execute(command, name=name, policy=Policy.FATAL)
        if not result.ok:
            raise error(f"{message} (exit status {result.exit_status})", exit_code=exit_code)
        return result

    def check_connectivity(self) -> StepResult:
        """Verify the key is accepted, bounded by the configured connect timeout."""
        logger.info(f"Testing SSH connection to {self.target.address}...")
        if self.target.trust_on_first_use:
            logger.warning(
                "Host keys are trusted on first use; an unknown host key is accepted "
                "without verification. Use --strict-host-keys to require a known key."
            )
        result = self.execute(
            "echo SSH_OK",
            name="ssh-connectivity",
            quiet=True,
            connect_timeout=self.target.connect_timeout,
        )
        if not result.ok or "SSH_OK" not in result.output:
            raise ConnectivityError(f"Cannot SSH into {self.target.address}")
        logger.info("SSH connection test: SUCCESS.")
        return result
