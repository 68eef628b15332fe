"""Shared fixtures for building system states in tests."""

from kernpurge.detector import SystemState
from kernpurge.index import PackageIndex
from kernpurge.release import ReleaseSet, parse_release


def make_state(pairs, current, latest=(), manual=(), hold=(), held_packages=()):
    """Build a SystemState from (status, package) pairs and release strings."""
    index = PackageIndex.from_pairs(pairs)
    installed = index.installed_releases()
    return SystemState(
        current=parse_release(current),
        index=index,
        installed=installed,
        latest=ReleaseSet(latest),
        manual=ReleaseSet(manual) & installed,
        hold=ReleaseSet(hold) & installed,
        held_packages=list(held_packages),
    )


def images(*releases, status="ii"):
    """(status, package) pairs for kernel image packages."""
    return [(status, f"linux-image-{release}") for release in releases]
