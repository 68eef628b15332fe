"""
Utility functions.

Shared helper functions used across kernpurge modules.
"""

import logging
import os
import shlex
import shutil
import subprocess
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """
    Configure logging for the kernpurge namespace.

    Args:
        debug: If True, set DEBUG level. Otherwise WARNING.
    """
    level = logging.DEBUG if debug else logging.WARNING

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('[%(levelname)s] %(message)s'))

    root = logging.getLogger("kernpurge")
    root.handlers = [handler]
    root.setLevel(level)
    root.propagate = False

    if debug:
        logger.debug("Debug logging enabled")


def format_command(cmd: List[str]) -> str:
    return " ".join(shlex.quote(part) for part in cmd)


def which(cmd: str) -> Optional[str]:
    """Find the full path of a command."""
    return shutil.which(cmd)


def run_command(cmd: List[str], check: bool = True) -> Tuple[int, str, str]:
    """
    Run a command and capture output.

    Args:
        cmd: Command as list of arguments
        check: If True, raise exception on non-zero exit code

    Returns:
        Tuple[int, str, str]: (exit_code, stdout, stderr)

    Raises:
        subprocess.CalledProcessError: If check=True and command fails
    """
    logger.debug("Capturing output: %s", format_command(cmd))
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=check,
        )
        logger.debug("Command returned %d", result.returncode)
        return result.returncode, result.stdout, result.stderr
    except subprocess.CalledProcessError as e:
        logger.debug("Command failed with %d", e.returncode)
        if check:
            raise
        return e.returncode, e.stdout or "", e.stderr or ""


def run_visible(cmd: List[str]) -> int:
    """
    Run a command with its output going straight to the terminal.

    Returns:
        int: Exit code of the command
    """
    logger.debug("Executing command: %s", format_command(cmd))
    result = subprocess.run(cmd, check=False)
    logger.debug("Command completed with return code: %d", result.returncode)
    return result.returncode


def needs_reboot() -> bool:
    """
    Check if a system reboot is needed.

    Checks for the presence of /var/run/reboot-required file,
    which is created by Debian/Ubuntu systems when a reboot is needed.

    Returns:
        bool: True if reboot is needed
    """
    reboot_required_file = "/var/run/reboot-required"

    try:
        return os.path.exists(reboot_required_file)
    except (OSError, PermissionError):
        # If we can't check, assume no reboot needed
        return False
