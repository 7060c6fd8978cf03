"""Helpers for locating and running external commands."""

import os
import shutil
import subprocess

from local_bench.logging_config import get_logger

logger = get_logger(__name__)

ELEVATION_TOOL = "sudo"


def is_installed(name: str) -> bool:
    """Return True if the executable resolves on PATH."""
    return shutil.which(name) is not None


def is_elevated() -> bool:
    """Return True if the current process runs as root."""
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def run_combined(args: list[str], timeout: float | None = None) -> tuple[int, str]:
    """Run a command and return its exit code and combined stdout/stderr.

    Args:
        args: Command and arguments
        timeout: Optional timeout in seconds

    Returns:
        Tuple of (return code, combined output)

    Raises:
        FileNotFoundError: If the executable does not exist
        subprocess.TimeoutExpired: If the command exceeds the timeout
    """
    logger.debug(f"Running command: {' '.join(args)}")
    result = subprocess.run(
        args,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        timeout=timeout,
    )
    logger.debug(f"Command {args[0]} exited with return code {result.returncode}")
    return result.returncode, result.stdout or ""


def process_command(pid: int) -> str | None:
    """Return the command line of a running process, or None if it cannot be read.

    Uses ``ps``, which behaves the same on Linux and macOS.
    """
    if not is_installed("ps"):
        return None
    try:
        code, output = run_combined(["ps", "-p", str(pid), "-o", "command="], timeout=10)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Could not read command line of pid {pid}: {e}")
        return None
    if code != 0:
        return ""
    return output.strip()
