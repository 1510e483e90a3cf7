"""Blocking command execution utilities."""

import logging
import subprocess
from pathlib import Path
from typing import Sequence, Tuple

VERSION_TIMEOUT = 30

_logging = logging.getLogger(__name__)


def display_command(command: Sequence[str] | str, secrets: Sequence[str] = ()) -> str:
    """Render a command for logs with every secret masked."""
    line = command if isinstance(command, str) else subprocess.list2cmdline(command)
    for secret in secrets:
        if secret:
            line = line.replace(secret, "****")
    return line


def run_command(
    command: Sequence[str] | str,
    timeout: int | None = None,
    log_path: Path | None = None,
    secrets: Sequence[str] = (),
) -> Tuple[str, int]:
    """Run a command without a shell and return its combined output and return code.

    A string command is handed to the OS as a ready-made command line, which
    Windows needs for msiexec property quoting. Native installers are run
    without a timeout. When ``log_path`` is given the command and its output
    are appended to that file.
    """
    shown = display_command(command, secrets)
    _logging.debug(f"Running command: {shown}")
    args = command if isinstance(command, str) else list(command)
    try:
        completed = subprocess.run(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        _logging.error(f"Command timed out after {timeout} seconds: {shown}")
        return f"Command timed out after {timeout} seconds", 1
    except OSError as e:
        _logging.error(f"Command execution failed: {type(e).__name__}: {e} | Command: {shown}")
        return f"Error: {str(e)}", 1

    output = (completed.stdout or "").strip()
    if log_path is not None:
        with open(log_path, "a", encoding="utf-8") as log:
            log.write(f"$ {shown}\n")
            if output:
                log.write(output + "\n")
            log.write(f"[exit {completed.returncode}]\n")
    if completed.returncode != 0:
        _logging.debug(f"exit {completed.returncode}: {output}")
    return output, completed.returncode
