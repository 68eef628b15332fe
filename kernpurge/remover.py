"""
Package removal module.

Provides functionality to purge kernel packages and to repair a broken
package state using apt.
"""

import logging
import os
import subprocess
import time
from enum import Enum
from typing import Callable, List, Sequence, Tuple

from .utils import format_command, run_command, which

logger = logging.getLogger(__name__)

LOCK_FILES = ("/var/lib/dpkg/lock-frontend", "/var/lib/dpkg/lock")
LOCK_POLL_INTERVAL = 5


class RemovalStatus(Enum):
    """Status of a package removal operation."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


def check_sudo() -> bool:
    """
    Check if the current process has root privileges.

    Returns:
        bool: True if running with sudo/root, False otherwise
    """
    try:
        # On Unix systems, root has UID 0
        return os.geteuid() == 0
    except AttributeError:
        # os.geteuid() not available on Windows
        return False


def package_lock_held(lock_files: Sequence[str] = LOCK_FILES) -> bool:
    """
    Check whether another process holds the package manager lock.

    Returns:
        bool: True if any lock file is in use
    """
    if not which("fuser"):
        logger.warning("fuser not found; not checking the package manager lock")
        return False

    existing = [path for path in lock_files if os.path.exists(path)]
    if not existing:
        return False

    # fuser exits 0 when at least one file is in use
    code, _, _ = run_command(["fuser"] + existing, check=False)
    return code == 0


def wait_for_package_lock(
    lock_files: Sequence[str] = LOCK_FILES,
    interval: float = LOCK_POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Block until the package manager lock is free.

    There is no timeout: the loop waits as long as the lock is held.

    Returns:
        int: Number of times the lock was found held
    """
    waits = 0
    while package_lock_held(lock_files):
        if waits == 0:
            logger.warning("Waiting for another package manager to finish...")
        logger.info("Package manager lock is held; retrying in %ss", interval)
        waits += 1
        sleep(interval)
    return waits


def generate_purge_command(packages: List[str], simulate: bool = False) -> List[str]:
    """
    Generate the apt command to purge packages.

    Uses 'apt-get -y purge' so configuration files go too. The -y flag
    is always included; confirmation is asked by kernpurge itself.

    Args:
        packages: List of package names to purge
        simulate: Add --simulate so apt only reports what it would do

    Returns:
        List[str]: Command as list of arguments
    """
    if not packages:
        raise ValueError("No packages provided for removal")

    cmd = ["apt-get", "-y"]
    if simulate:
        cmd.append("--simulate")
    cmd.append("purge")
    cmd.extend(packages)
    return cmd


def generate_fix_command(simulate: bool = False) -> List[str]:
    """Generate the apt command that repairs broken dependencies."""
    cmd = ["apt-get", "-y"]
    if simulate:
        cmd.append("--simulate")
    cmd.extend(["-f", "install"])
    return cmd


def _execute_apt(cmd: List[str]) -> int:
    logger.debug("Executing command: %s", format_command(cmd))
    try:
        # Output visible to user
        result = subprocess.run(cmd, check=False)
    except (subprocess.SubprocessError, OSError) as e:
        raise RuntimeError(f"Failed to execute apt-get: {e}")
    logger.debug("apt-get returned %d", result.returncode)
    return result.returncode


def purge_packages(packages: List[str], simulate: bool = False) -> List[Tuple[str, RemovalStatus]]:
    """
    Purge packages using apt.

    Args:
        packages: List of package names to purge
        simulate: If True, let apt simulate the purge

    Returns:
        List[Tuple[str, RemovalStatus]]: List of (package, status) tuples

    Raises:
        PermissionError: If not running with sufficient privileges
        RuntimeError: If apt command fails
    """
    if not packages:
        return []

    if not simulate:
        if not check_sudo():
            raise PermissionError("Root privileges required. Please run with sudo.")
        wait_for_package_lock()

    code = _execute_apt(generate_purge_command(packages, simulate=simulate))
    if code != 0:
        raise RuntimeError(f"apt-get purge failed with exit code {code}")

    status = RemovalStatus.SKIPPED if simulate else RemovalStatus.SUCCESS
    return [(pkg, status) for pkg in packages]


def fix_broken(simulate: bool = False) -> bool:
    """
    Let apt repair a broken package state.

    Returns:
        bool: True if apt succeeded

    Raises:
        PermissionError: If not running with sufficient privileges
    """
    if not simulate:
        if not check_sudo():
            raise PermissionError("Root privileges required. Please run with sudo.")
        wait_for_package_lock()

    return _execute_apt(generate_fix_command(simulate=simulate)) == 0
