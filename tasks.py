"""Invoke tasks for dockship development and operation."""

from pathlib import Path

from invoke import task
from invoke.context import Context

LOG_DIR = Path("logs")


@task
def deploy(ctx: Context, from_stage: str = "", config: str = "") -> None:
    """Run a deployment, prompting for anything not preset in .env.

    Args:
        ctx: Invoke context
        from_stage: Resume at this stage (e.g. configure-proxy)
        config: Path to dockship.toml
    """
    cmd = "uv run dockship"
    if from_stage:
        cmd += f" --from-stage {from_stage}"
    if config:
        cmd += f" --config {config}"
    ctx.run(cmd, pty=True)


@task
def cleanup(ctx: Context, app: str = "") -> None:
    """Tear down everything dockship deployed on the remote host.

    Args:
        ctx: Invoke context
        app: Application directory to remove in addition to managed sites
    """
    cmd = "uv run dockship --cleanup"
    if app:
        cmd += f" --app {app}"
    ctx.run(cmd, pty=True)


@task
def logs(ctx: Context, follow: bool = False, lines: int = 50) -> None:
    """View the most recent run log.

    Args:
        ctx: Invoke context
        follow: Follow log output (like tail -f)
        lines: Number of lines to show (default: 50)
    """
    runs = sorted(LOG_DIR.glob("deploy_*.log"))
    if not runs:
        print(f"No run logs found in {LOG_DIR}/.")
        return

    if follow:
        ctx.run(f"tail -f {runs[-1]}", pty=True)
    else:
        ctx.run(f"tail -n {lines} {runs[-1]}")


@task
def test(ctx: Context, verbose: bool = False, coverage: bool = False) -> None:
    """Run the test suite.

    Args:
        ctx: Invoke context
        verbose: Enable verbose output
        coverage: Run with coverage report
    """
    cmd = "uv run pytest"
    if verbose:
        cmd += " -v"
    if coverage:
        cmd += " --cov=dockship --cov-report=term-missing"
    ctx.run(cmd, pty=True)


@task
def clean(ctx: Context, all: bool = False) -> None:
    """Clean up temporary files.

    Args:
        ctx: Invoke context
        all: Also remove run logs and fetched workspaces
    """
    # Clean Python cache
    for pattern in ["__pycache__", "*.pyc", "*.pyo", ".pytest_cache"]:
        ctx.run(f"find . -name '{pattern}' -exec rm -rf {{}} + 2>/dev/null || true", warn=True)

    # Clean build artifacts
    for path in ["build", "dist", "*.egg-info", ".eggs"]:
        ctx.run(f"rm -rf {path} 2>/dev/null || true", warn=True)

    if all:
        print("Removing run logs and workspaces...")
        ctx.run(f"rm -rf {LOG_DIR} workspace_* 2>/dev/null || true", warn=True)

    print("Cleanup complete")


@task(name="docs-build")
def docs_build(ctx: Context) -> None:
    """Build the Sphinx documentation."""
    ctx.run("uv run sphinx-build -b html docs docs/_build/html", pty=True)
    print("Documentation built at docs/_build/html/index.html")
