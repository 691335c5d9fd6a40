"""dockship command line.

Usage:
    dockship [--repo URL] [--branch BRANCH] [--host HOST] [--user USER]
             [--key PATH] [--port PORT] [--from-stage STAGE]
    dockship --cleanup [--host HOST] [--user USER] [--key PATH] [--app NAME]

Parameters not given as flags are taken from DOCKSHIP_* environment variables
(or a .env file), then prompted for interactively.
"""

import argparse
import getpass
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from dockship import __version__
from dockship.config import DockshipConfig, load_config, load_run_parameters
from dockship.errors import DeployError, ExitCode, ParameterError
from dockship.pipeline import Pipeline, Stage, stage_order
from dockship.runlog import RunLog
from dockship.schemas.deployment import (
    AppIdentity,
    DeploymentTarget,
    RunConfig,
    SourceSpec,
    derive_app_name,
)
from dockship.services.cleanup import CONFIRMATION_LITERAL, CleanupOperator, require_confirmation
from dockship.services.remote import RemoteExecutor

logger = logging.getLogger(__name__)

PROMPTS = {
    "repo_url": "Git repository URL (https or ssh): ",
    "branch": "Branch name (default: main): ",
    "user": "Remote SSH username: ",
    "host": "Remote SSH host/IP: ",
    "key_path": "Path to local SSH private key for remote (e.g. ~/.ssh/deploy_key): ",
    "port": "Application internal container port (e.g. 3000): ",
}

LABELS = {
    "repo_url": "Git repository URL",
    "branch": "Branch name",
    "user": "Remote SSH username",
    "host": "Remote SSH host",
    "key_path": "SSH private key path",
    "port": "Application port",
}

DEPLOY_PARAMETERS = ("repo_url", "branch", "user", "host", "key_path", "port")
REMOTE_PARAMETERS = ("user", "host", "key_path")
OPTIONAL_PARAMETERS = {"branch"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dockship",
        description="Deploy a containerized Git project to a remote host behind Nginx",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Interactive deployment
    dockship

    # Fully specified deployment
    dockship --repo https://github.com/acme/shop.git --branch main \\
        --user ubuntu --host 203.0.113.10 --key ~/.ssh/deploy_key --port 3000

    # Resume after fixing a failed proxy stage
    dockship --from-stage configure-proxy

    # Tear down everything deployed on a host (asks for confirmation)
    dockship --cleanup --user ubuntu --host 203.0.113.10 --key ~/.ssh/deploy_key
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--repo", dest="repo_url", help="Git repository URL (https or ssh)")
    parser.add_argument("--token", help="Personal access token for private HTTPS repositories")
    parser.add_argument("--branch", help="Branch to deploy (default: main)")
    parser.add_argument("--user", help="Remote SSH username")
    parser.add_argument("--host", help="Remote SSH host or IP")
    parser.add_argument("--key", dest="key_path", help="Path to the SSH private key for the remote host")
    parser.add_argument("--git-key", help="SSH key for cloning over SSH (default: --key)")
    parser.add_argument("--port", help="Application internal container port")
    parser.add_argument("--public-port", type=int, help="Public port Nginx listens on (default: 80)")
    parser.add_argument("--config", type=Path, help="Path to dockship.toml")
    parser.add_argument(
        "--from-stage",
        choices=[stage.value for stage in stage_order()],
        default=Stage.FETCH_SOURCE.value,
        help="Resume a run at this stage",
    )
    parser.add_argument("--source-dir", type=Path, help="Deploy an existing checkout instead of cloning")
    parser.add_argument(
        "--strict-host-keys",
        action="store_true",
        help="Refuse unknown SSH host keys instead of trusting them on first use",
    )
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Never prompt; fail if a required parameter is missing",
    )
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Remove containers, images, Nginx sites and app directories from the host",
    )
    parser.add_argument("--app", help="Application name whose directory --cleanup should remove")
    parser.add_argument("--confirm", help=f"Confirmation literal for --cleanup ({CONFIRMATION_LITERAL})")
    return parser


# =============================================================================
# Parameter collection
# =============================================================================

def collect_parameters(
    args: argparse.Namespace,
    names: tuple[str, ...],
    interactive: bool = True,
) -> dict[str, str]:
    """Resolve run parameters from flags, then presets, then prompts.

    Raises:
        ParameterError: If a required parameter is still missing.
    """
    preset = load_run_parameters()
    params: dict[str, str] = {}
    for name in names:
        value = getattr(args, name, None) or preset.get(name)
        if not value and interactive:
            value = input(PROMPTS[name]).strip()
        if value:
            params[name] = value
        elif name not in OPTIONAL_PARAMETERS:
            raise ParameterError(f"{LABELS[name]} is required")

    if "repo_url" in names:
        token = args.token or preset.get("token")
        if not token and interactive and params["repo_url"].startswith("http"):
            token = getpass.getpass(
                "If repo is private and you need a Personal Access Token (PAT), "
                "enter it now (leave empty if not needed): "
            )
        if token:
            params["token"] = token
    return params


def parse_port(value: str) -> int:
    if not value.isdigit() or not 1 <= int(value) <= 65535:
        raise ParameterError(f"Invalid port: {value!r}", exit_code=ExitCode.INVALID_PORT)
    return int(value)


def build_target(params: dict[str, str], settings: DockshipConfig, strict_host_keys: bool) -> DeploymentTarget:
    key_path = Path(params["key_path"]).expanduser()
    if not key_path.is_file():
        raise ParameterError(f"SSH key not found: {key_path}")
    try:
        return DeploymentTarget(
            host=params["host"],
            user=params["user"],
            key_path=key_path,
            trust_on_first_use=settings.ssh.trust_on_first_use and not strict_host_keys,
            connect_timeout=settings.ssh.connect_timeout,
        )
    except ValidationError as exc:
        raise ParameterError(f"Invalid deployment target: {exc}") from exc


def build_run_config(
    params: dict[str, str],
    settings: DockshipConfig,
    strict_host_keys: bool = False,
    git_key: str | None = None,
) -> RunConfig:
    """Validate collected parameters into the immutable run context.

    Raises:
        ParameterError: On any invalid value; no remote contact happens first.
    """
    port = parse_port(params["port"])
    target = build_target(params, settings, strict_host_keys)
    try:
        source = SourceSpec(
            repo_url=params["repo_url"],
            branch=params.get("branch") or "main",
            token=params.get("token"),
            ssh_key_path=Path(git_key).expanduser() if git_key else None,
        )
        app = AppIdentity.from_repo_url(source.repo_url, port)
    except ValidationError as exc:
        raise ParameterError(
            f"Cannot derive an application name from {params['repo_url']!r}"
        ) from exc
    return RunConfig(target=target, source=source, app=app, settings=settings)


def apply_cli_overrides(settings: DockshipConfig, args: argparse.Namespace) -> DockshipConfig:
    updates = {}
    if args.public_port is not None:
        updates["proxy"] = settings.proxy.model_copy(update={"public_port": args.public_port})
    if args.source_dir is not None:
        updates["workspace"] = settings.workspace.model_copy(update={"source_dir": args.source_dir})
    return settings.model_copy(update=updates) if updates else settings


def log_parameters(config: RunConfig) -> None:
    logger.info("Collected parameters:")
    logger.info(f"  Repo: {config.source.repo_url}")
    logger.info(f"  Branch: {config.source.branch}")
    logger.info(f"  Remote: {config.target.address}")
    logger.info(f"  SSH key: {config.target.key_path}")
    logger.info(f"  App: {config.app.name} (port {config.app.port}) -> {config.app_path}")


# =============================================================================
# Modes
# =============================================================================

def run_deploy(args: argparse.Namespace, settings: DockshipConfig) -> None:
    params = collect_parameters(args, DEPLOY_PARAMETERS, interactive=not args.non_interactive)
    config = build_run_config(params, settings, args.strict_host_keys, args.git_key)
    log_parameters(config)
    Pipeline(config).run(start_at=Stage(args.from_stage))
    logger.info(f"Deployment of {config.app.name} completed successfully.")


def run_cleanup(args: argparse.Namespace, settings: DockshipConfig) -> None:
    interactive = not args.non_interactive
    answer = args.confirm
    if answer is None and interactive:
        print(
            "WARNING - CLEANUP MODE: this will remove ALL containers and images, "
            "the Nginx sites and the application directories deployed by dockship "
            "on the remote host."
        )
        answer = input(f"Type {CONFIRMATION_LITERAL} (uppercase) to confirm: ")
    require_confirmation(answer)

    params = collect_parameters(args, REMOTE_PARAMETERS, interactive=interactive)
    target = build_target(params, settings, args.strict_host_keys)

    app_names = []
    if args.app:
        app_names.append(args.app)
    elif args.repo_url:
        app_names.append(derive_app_name(args.repo_url))

    executor = RemoteExecutor(target, use_sudo=settings.remote.use_sudo)
    CleanupOperator(executor, settings, app_names).run(answer)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        settings = apply_cli_overrides(load_config(args.config), args)
    except (OSError, ValueError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return ExitCode.INVALID_PARAMETERS

    run_log = RunLog.start(
        settings.logging.log_dir,
        retention_days=settings.logging.retention_days,
        level=settings.logging.level,
    )
    logger.info(f"Starting dockship {__version__}, logging to {run_log.path}")

    exit_code: ExitCode | None = None
    try:
        if args.cleanup:
            run_cleanup(args, settings)
        else:
            run_deploy(args, settings)
        exit_code = ExitCode.OK
    except DeployError as exc:
        logger.error(exc.message)
        if exc.hint:
            logger.error(f"Hint: {exc.hint}")
        exit_code = exc.exit_code
    except KeyboardInterrupt:
        logger.error(
            "Interrupted. Remote commands in flight were not rolled back; "
            "inspect the host or re-run to converge."
        )
        exit_code = ExitCode.INTERRUPTED
    finally:
        if exit_code is ExitCode.OK:
            logger.info(f"Script completed successfully. Log: {run_log.path}")
        elif exit_code is None:
            logger.error(f"Script failed unexpectedly. Log: {run_log.path}")
        else:
            logger.error(f"Script failed with code {int(exit_code)}. Log: {run_log.path}")
        run_log.archive()

    return int(exit_code)


def run() -> None:
    """Console script wrapper."""
    sys.exit(main())


if __name__ == "__main__":
    run()
