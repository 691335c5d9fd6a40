"""Run a local process and stream its output into the run log."""

import logging
import os
import subprocess
from collections.abc import Callable, Iterable, Mapping

logger = logging.getLogger(__name__)

# Exit status reported when the executable itself is missing
COMMAND_NOT_FOUND = 127


def redact(text: str, secrets: Iterable[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "****")
    return text


def stream_process(
    cmd: list[str],
    *,
    input_text: str | None = None,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    secrets: Iterable[str] = (),
    on_line: Callable[[str], None] | None = None,
    quiet: bool = False,
) -> tuple[int, str]:
    """Run ``cmd``, logging each output line as soon as it is produced.

    stderr is merged into stdout. Secrets are masked before anything is
    logged or returned.

    Args:
        cmd: Argument vector
        input_text: Text written to the process stdin, which is then closed
        env: Extra environment variables layered over os.environ
        cwd: Working directory for the process
        secrets: Strings that must never appear in logs or output
        on_line: Optional callback invoked with each redacted line
        quiet: Log lines at DEBUG instead of INFO

    Returns:
        (exit status, collected redacted output)
    """
    secrets = [s for s in secrets if s]
    full_env = {**os.environ, **env} if env else None
    log_line = logger.debug if quiet else logger.info

    try:
        process = subprocess.Popen(
            cmd,
            stdin=subprocess.PIPE if input_text is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=full_env,
            cwd=cwd,
            text=True,
            bufsize=1,
        )
    except FileNotFoundError:
        message = f"{cmd[0]}: command not found"
        logger.error(message)
        return COMMAND_NOT_FOUND, message

    if input_text is not None:
        process.stdin.write(input_text)
        process.stdin.close()

    lines = []
    for raw in process.stdout:
        line = redact(raw.rstrip("\n"), secrets)
        lines.append(line)
        log_line(f"  {line}")
        if on_line is not None:
            on_line(line)
    process.stdout.close()
    returncode = process.wait()
    return returncode, "\n".join(lines)
