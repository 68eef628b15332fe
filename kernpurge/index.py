"""
Kernel package index.

Groups the kernel packages known to dpkg by the release they belong to,
so the analyzer can translate releases to package names.
"""

import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .release import RELEASE_PATTERN, Release, ReleaseSet


# Family may carry its own version tag (linux-hwe-5.15-headers-5.15.0-82)
_PACKAGE_RE = re.compile(rf'^(?P<family>linux(?:-[a-z0-9.]+)*?)-{RELEASE_PATTERN}$')

IMAGE_FAMILIES = ("linux-image", "linux-image-unsigned")

# Families that carry a version but do not belong to a release
EXCLUDED_FAMILIES = ("linux-source", "linux-doc")

# Flavor-looking suffixes of packages shared by all flavors of a version
SHARED_FLAVORS = ("common", "common-rt")

# Debug and unsigned builds of a flavored package (linux-image-6.1.0-13-amd64-unsigned)
VARIANT_SUFFIXES = ("-dbgsym", "-dbg", "-unsigned")


@dataclass(frozen=True)
class PackageEntry:
    """
    A kernel package known to dpkg.

    Attributes:
        name: Package name (e.g., 'linux-headers-5.15.0-82-generic')
        status: dpkg status abbreviation (e.g., 'ii', 'rc')
        family: Package family (e.g., 'linux-headers')
        release: Release the package belongs to; empty flavor when shared
    """
    name: str
    status: str
    family: str
    release: Release

    @property
    def is_shared(self) -> bool:
        return not self.release.flavor

    @property
    def is_image(self) -> bool:
        return self.family in IMAGE_FAMILIES

    @property
    def is_installed(self) -> bool:
        return is_installed_status(self.status)


def is_installed_status(status: str) -> bool:
    """
    Check whether a dpkg status abbreviation means the package is on disk.

    The second letter is the current state: 'n' is not installed and
    'c' means only configuration files remain.
    """
    return len(status) >= 2 and status[1] not in "nc"


def parse_package(name: str) -> Optional[Tuple[str, Release]]:
    """
    Split a kernel package name into family and release.

    Meta-packages without a full version (linux-image-generic) and
    unrelated versioned packages (linux-source-*) are not kernel packages.

    Args:
        name: Package name (e.g., 'linux-modules-5.15.0-82-generic')

    Returns:
        Optional[Tuple[str, Release]]: (family, release), or None
    """
    name = name.strip()
    if ":" in name:
        # Strip architecture qualifier (linux-libc-dev:amd64)
        name = name.split(":", 1)[0]

    match = _PACKAGE_RE.match(name)
    if not match:
        return None

    family = match.group('family')
    if family in EXCLUDED_FAMILIES:
        return None

    flavor = match.group('flavor') or ""
    for suffix in VARIANT_SUFFIXES:
        if flavor.endswith(suffix):
            flavor = flavor[:-len(suffix)]
    if flavor in SHARED_FLAVORS:
        flavor = ""

    return family, Release(match.group('version'), flavor)


class PackageIndex:
    """
    Kernel packages grouped by release.

    Flavored packages are indexed by their exact release; shared packages
    (no flavor, or a 'common' flavor) are indexed by version.
    """

    def __init__(self, entries: Iterable[PackageEntry] = ()):
        self._entries: List[PackageEntry] = []
        self._by_release: Dict[Release, List[PackageEntry]] = defaultdict(list)
        self._shared: Dict[str, List[PackageEntry]] = defaultdict(list)

        for entry in sorted(entries, key=lambda e: e.name):
            self._entries.append(entry)
            if entry.is_shared:
                self._shared[entry.release.version].append(entry)
            else:
                self._by_release[entry.release].append(entry)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> "PackageIndex":
        """
        Build the index from (status, package-name) pairs.

        Packages dpkg knows about but that are not installed at all are
        skipped, as are non-kernel packages.
        """
        entries = {}
        for status, name in pairs:
            if len(status) >= 2 and status[1] == "n":
                continue
            parsed = parse_package(name)
            if parsed is None:
                continue
            family, release = parsed
            entries[name] = PackageEntry(name, status, family, release)
        return cls(entries.values())

    @property
    def entries(self) -> List[PackageEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def installed_releases(self) -> ReleaseSet:
        """Releases that own an installed kernel image package."""
        return ReleaseSet(
            entry.release for entry in self._entries
            if entry.is_image and entry.is_installed and not entry.is_shared
        )

    def packages_for(self, release: Release) -> List[str]:
        """
        Package names that belong to a release.

        Includes the packages with the exact version-and-flavor suffix and
        the shared packages of the same version.
        """
        names = [e.name for e in self._by_release.get(release, [])]
        names.extend(e.name for e in self._shared.get(release.version, []))
        return sorted(set(names))
