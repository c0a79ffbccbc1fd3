"""System utility checks."""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path


def check_cli(command: str, timeout: float = 10) -> tuple[bool, str]:
    """Check if an agent CLI is on PATH and answers ``--help``."""
    cli_path = shutil.which(command)
    if not cli_path:
        return False, f"{command} CLI not found in PATH"
    try:
        result = subprocess.run(
            [command, "--help"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return False, f"{command} CLI help check timed out"
    except OSError as e:
        return False, f"Error checking {command} CLI: {e}"
    if result.returncode != 0:
        return False, f"{command} --help exited with code {result.returncode}"
    return True, cli_path


def check_work_dir(path: str) -> tuple[bool, str]:
    """Validate a working directory path."""
    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        return False, f"Directory not found: {resolved}"
    if not resolved.is_dir():
        return False, f"Not a directory: {resolved}"
    return True, str(resolved)


def check_named_pipes() -> tuple[bool, str]:
    """Check that the relay helpers used for prompt streaming are available."""
    missing = [tool for tool in ("tee", "cat") if shutil.which(tool) is None]
    if missing:
        return False, f"Missing relay tools: {', '.join(missing)}"
    if not hasattr(os, "mkfifo"):
        return False, "Named pipes are not supported on this platform"
    return True, "tee, cat, mkfifo"
