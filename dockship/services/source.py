"""Fetch the application source tree for one branch.

The checkout is built with ``git init`` + ``git fetch <url>`` rather than
``git clone`` so that an access token embedded in the HTTPS transport URL is
only ever passed on the git command line. It is not written into
``.git/config`` (origin is recorded with the plain URL) and every line of git
output is redacted before it reaches the log.
"""

import logging
import shlex
import shutil
from pathlib import Path
from urllib.parse import quote, urlsplit, urlunsplit

from dockship.errors import CloneError, ExitCode
from dockship.schemas.deployment import (
    DeploymentDescriptor,
    SourceSpec,
    detect_descriptor,
)
from dockship.services.shell import stream_process

logger = logging.getLogger(__name__)


def authenticated_url(repo_url: str, token: str | None) -> str:
    """Return the HTTPS transport URL with the token as user info."""
    if not token:
        return repo_url
    parts = urlsplit(repo_url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"{quote(token, safe='')}@{host}", parts.path, parts.query, parts.fragment))


class SourceFetcher:
    """Produce a local directory holding exactly the requested branch tip."""

    def __init__(
        self,
        spec: SourceSpec,
        default_key: Path | None = None,
        trust_on_first_use: bool = True,
    ) -> None:
        self.spec = spec
        self.ssh_key = spec.ssh_key_path or default_key
        self.trust_on_first_use = trust_on_first_use

    @property
    def _token(self) -> str | None:
        return self.spec.token.get_secret_value() if self.spec.token else None

    def _failure(self) -> tuple[ExitCode, str]:
        transport = self.spec.transport
        if transport == "ssh":
            return ExitCode.CLONE_SSH, "Failed to clone repo via SSH"
        if transport == "https" and self._token:
            return ExitCode.CLONE_HTTPS_TOKEN, "Failed to clone repo (check PAT or branch)"
        return ExitCode.CLONE_HTTPS, "Failed to clone repo"

    def _git_env(self) -> dict[str, str]:
        env = {"GIT_TERMINAL_PROMPT": "0"}
        if self.spec.transport == "ssh":
            # Same host-key policy as the deployment target
            host_key_policy = "accept-new" if self.trust_on_first_use else "yes"
            options = ["-o", "BatchMode=yes", "-o", f"StrictHostKeyChecking={host_key_policy}"]
            if self.ssh_key:
                options = ["-i", str(self.ssh_key), "-o", "IdentitiesOnly=yes", *options]
            env["GIT_SSH_COMMAND"] = shlex.join(["ssh", *options])
        return env

    def _git(self, *args: str, cwd: Path) -> int:
        token = self._token
        returncode, _ = stream_process(
            ["git", *args],
            cwd=str(cwd),
            env=self._git_env(),
            secrets=[token, quote(token, safe="")] if token else [],
        )
        return returncode

    def fetch(self, dest: Path) -> Path:
        """Check out ``spec.branch`` into ``dest``.

        Any existing directory at ``dest`` is replaced. There is no
        partial-clone recovery: every failure raises CloneError.

        Returns:
            The checkout directory.
        """
        spec = self.spec
        transport = spec.transport
        if transport == "https" and self._token:
            logger.info("Cloning via HTTPS with PAT...")
        elif transport == "https":
            logger.info("Cloning public repo via HTTPS...")
        elif transport == "ssh":
            logger.info("Cloning via SSH...")
        else:
            logger.info(f"Cloning from {spec.repo_url}...")

        if dest.exists():
            shutil.rmtree(dest)
        dest.mkdir(parents=True)

        transport_url = authenticated_url(spec.repo_url, self._token) if transport == "https" else spec.repo_url
        refspec = f"+refs/heads/{spec.branch}:refs/remotes/origin/{spec.branch}"
        commands = [
            ("init", "--quiet"),
            ("remote", "add", "origin", spec.repo_url),
            ("fetch", "--no-tags", transport_url, refspec),
            ("checkout", "--quiet", "-B", spec.branch, f"origin/{spec.branch}"),
        ]
        for args in commands:
            if self._git(*args, cwd=dest) != 0:
                exit_code, message = self._failure()
                raise CloneError(f"{message}: git {args[0]} failed for branch '{spec.branch}'", exit_code=exit_code)

        logger.info(f"Repository cloned successfully into {dest}")
        return dest

    @staticmethod
    def inspect(tree: Path) -> DeploymentDescriptor | None:
        """Report which container descriptor the tree carries."""
        descriptor = detect_descriptor(tree)
        if descriptor is DeploymentDescriptor.COMPOSE:
            logger.info("Found docker compose file.")
        elif descriptor is DeploymentDescriptor.SINGLE_CONTAINER:
            logger.info("Found Dockerfile.")
        else:
            logger.warning("No Dockerfile or docker-compose.yml found in the repository.")
        return descriptor
