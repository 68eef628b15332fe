"""
Kernel detection module.

Queries the live system for the currently booted release, the kernel
packages known to dpkg, the releases needed by meta-packages and the
releases marked as manually installed or held.
"""

import logging
import re
import subprocess
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from .index import IMAGE_FAMILIES, PackageIndex, is_installed_status, parse_package
from .release import Release, ReleaseSet, parse_release
from .utils import run_command

logger = logging.getLogger(__name__)

PACKAGE_QUERY_FORMAT = "${db:Status-Abbrev} ${Package}\n"
DEPENDS_QUERY_FORMAT = "${Package}\t${Depends}\n"

_DEPENDENCY_SPLIT_RE = re.compile(r'[,|]')


@dataclass
class SystemState:
    """
    Snapshot of the kernel-related system state for one run.

    Attributes:
        current: Currently booted release
        index: Kernel packages known to dpkg
        installed: Releases with an installed kernel image
        latest: Releases depended on by installed meta-packages
        manual: Installed releases whose image is manually installed
        hold: Installed releases with a held package
        held_packages: Names of held kernel packages
    """
    current: Release
    index: PackageIndex
    installed: ReleaseSet
    latest: ReleaseSet
    manual: ReleaseSet
    hold: ReleaseSet
    held_packages: List[str] = field(default_factory=list)


def get_current_release() -> Release:
    """
    Detect the currently booted kernel release.

    Returns:
        Release: Running release (e.g., 5.15.0-82-generic)

    Raises:
        RuntimeError: If unable to detect the running kernel
    """
    try:
        result = subprocess.run(
            ["uname", "-r"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (subprocess.CalledProcessError, OSError) as e:
        raise RuntimeError(f"Failed to detect running kernel: {e}")

    kernel_release = result.stdout.strip()
    if not kernel_release:
        raise RuntimeError("uname returned empty kernel release")

    try:
        return parse_release(kernel_release)
    except ValueError as e:
        raise RuntimeError(f"Unrecognized running kernel release: {e}")


def query_packages() -> List[Tuple[str, str]]:
    """
    Query dpkg for kernel packages.

    Returns:
        List[Tuple[str, str]]: (status, package-name) pairs

    Raises:
        RuntimeError: If unable to query the package database
    """
    try:
        # dpkg-query exits 1 when no package matches the pattern
        code, stdout, stderr = run_command(
            ["dpkg-query", "-W", "-f", PACKAGE_QUERY_FORMAT, "linux-*"],
            check=False,
        )
    except OSError as e:
        raise RuntimeError(f"Failed to query installed packages: {e}")

    if code not in (0, 1):
        raise RuntimeError(f"dpkg-query failed with exit code {code}: {stderr.strip()}")

    pairs = []
    for line in stdout.splitlines():
        parts = line.split()
        if len(parts) == 2:
            pairs.append((parts[0], parts[1]))
    return pairs


def find_meta_packages(pairs: Iterable[Tuple[str, str]]) -> List[str]:
    """
    Find installed kernel image meta-packages.

    A meta-package is a linux-image-* package without a release, such as
    linux-image-generic or linux-image-generic-hwe-22.04.
    """
    metas = []
    for status, name in pairs:
        if not name.startswith("linux-image-") or not is_installed_status(status):
            continue
        if parse_package(name) is None:
            metas.append(name)
    return sorted(metas)


def parse_dependencies(depends: str) -> List[str]:
    """
    Extract package names from a dpkg Depends field.

    'linux-image-5.15.0-82-generic (= 5.15.0-82.91), foo | bar'
    -> ['linux-image-5.15.0-82-generic', 'foo', 'bar']
    """
    names = []
    for dependency in _DEPENDENCY_SPLIT_RE.split(depends):
        dependency = dependency.strip()
        if not dependency:
            continue
        names.append(dependency.split()[0].split(":")[0])
    return names


def get_latest_releases(meta_packages: List[str]) -> ReleaseSet:
    """
    Get the releases that installed meta-packages depend on.

    Args:
        meta_packages: Names of installed meta-packages

    Returns:
        ReleaseSet: Latest needed release of each meta-package

    Raises:
        RuntimeError: If unable to query the package database
    """
    if not meta_packages:
        return ReleaseSet()

    try:
        code, stdout, stderr = run_command(
            ["dpkg-query", "-W", "-f", DEPENDS_QUERY_FORMAT] + list(meta_packages),
            check=False,
        )
    except OSError as e:
        raise RuntimeError(f"Failed to query meta-packages: {e}")

    if code not in (0, 1):
        raise RuntimeError(f"dpkg-query failed with exit code {code}: {stderr.strip()}")

    latest = []
    for line in stdout.splitlines():
        _, _, depends = line.partition("\t")
        for name in parse_dependencies(depends):
            parsed = parse_package(name)
            if parsed is None:
                continue
            family, release = parsed
            if family in IMAGE_FAMILIES and release.flavor:
                latest.append(release)
    return ReleaseSet(latest)


def _apt_mark(command: str) -> List[str]:
    try:
        code, stdout, stderr = run_command(["apt-mark", command], check=False)
    except OSError as e:
        raise RuntimeError(f"Failed to run apt-mark {command}: {e}")
    if code != 0:
        raise RuntimeError(f"apt-mark {command} failed with exit code {code}: {stderr.strip()}")
    return [line.strip() for line in stdout.splitlines() if line.strip()]


def get_manual_packages() -> List[str]:
    """Kernel packages marked as manually installed."""
    return [name for name in _apt_mark("showmanual") if name.startswith("linux-")]


def get_held_packages() -> List[str]:
    """Kernel packages on hold."""
    return [name for name in _apt_mark("showhold") if name.startswith("linux-")]


def releases_from_packages(
    names: Iterable[str],
    installed: ReleaseSet,
    images_only: bool = False,
) -> ReleaseSet:
    """
    Map package names to installed releases.

    A shared package (no flavor) maps to every installed release of the
    same version.

    Args:
        names: Package names
        installed: Installed releases
        images_only: Only consider kernel image packages

    Returns:
        ReleaseSet: Installed releases the packages belong to
    """
    releases = []
    for name in names:
        parsed = parse_package(name)
        if parsed is None:
            continue
        family, release = parsed
        if images_only and family not in IMAGE_FAMILIES:
            continue
        if release.flavor:
            releases.append(release)
        else:
            releases.extend(r for r in installed if r.version == release.version)
    return ReleaseSet(releases) & installed


def gather_system_state() -> SystemState:
    """
    Collect everything the release set calculator needs.

    Returns:
        SystemState: Fresh snapshot of the system

    Raises:
        RuntimeError: If any query fails
    """
    current = get_current_release()
    logger.debug("Current release: %s", current)

    pairs = query_packages()
    index = PackageIndex.from_pairs(pairs)
    installed = index.installed_releases()
    logger.debug("Installed releases: %s", ", ".join(installed.to_strings()))

    metas = find_meta_packages(pairs)
    latest = get_latest_releases(metas)
    logger.debug("Meta-packages %s need: %s", ", ".join(metas), ", ".join(latest.to_strings()))

    manual = releases_from_packages(get_manual_packages(), installed, images_only=True)
    held_packages = get_held_packages()
    hold = releases_from_packages(held_packages, installed)
    logger.debug("Manual releases: %s", ", ".join(manual.to_strings()))
    logger.debug("Held releases: %s", ", ".join(hold.to_strings()))

    return SystemState(
        current=current,
        index=index,
        installed=installed,
        latest=latest,
        manual=manual,
        hold=hold,
        held_packages=held_packages,
    )
