"""
Kernel release model.

Provides the Release value type, a numeric-aware release comparator and
the immutable ReleaseSet used by the release set calculator.
"""

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Iterable, Iterator, List, Tuple, Union


# <major.minor.patch>[-<abi>][+<local>][-<flavor>]
# Examples: 4.9.0-generic, 5.15.0-82-generic, 6.12.48+deb13-amd64,
# 6.1.0-0.deb11.13-amd64 (backport ABI), 5.15.153.1-microsoft-standard-WSL2
RELEASE_PATTERN = (
    r'(?P<version>\d+(?:\.\d+){2,}(?:-\d+(?:\.[a-z][a-z0-9]*\.\d+)?)?(?:\+[0-9A-Za-z.~]+)?)'
    r'(?:-(?P<flavor>[A-Za-z][A-Za-z0-9]*(?:-[A-Za-z0-9]+)*))?'
)

_RELEASE_RE = re.compile(rf'^{RELEASE_PATTERN}$')
_NUMBER_SPLIT_RE = re.compile(r'[.-]')
_TAG_RE = re.compile(r'^[a-z][a-z0-9]*$')

VersionPart = Tuple[int, int, str]


def version_key(version: str) -> Tuple[Tuple[VersionPart, ...], str]:
    """
    Build a sort key for a version string.

    Every dot or dash separated number is compared as an integer, so
    '4.10' sorts after '4.9'. A word inside a backport ABI such as
    '0.deb11.13' sorts before any number at the same position and
    against other words as a string. A '+local' tag is compared as a
    string after the numbers.

    Args:
        version: Version part of a release (e.g., '5.15.0-82')

    Returns:
        Tuple: (components, local tag)
    """
    numbers, _, local = version.partition('+')
    parts = []
    for part in _NUMBER_SPLIT_RE.split(numbers):
        if part.isdigit():
            parts.append((1, int(part), ""))
        elif _TAG_RE.match(part):
            parts.append((0, 0, part))
        else:
            raise ValueError(f"Invalid kernel version: {version!r}")
    return tuple(parts), local


@total_ordering
@dataclass(frozen=True)
class Release:
    """
    A kernel release: version plus optional flavor.

    Attributes:
        version: Version part (e.g., '5.15.0-82')
        flavor: Build variant (e.g., 'generic'), empty if none
    """
    version: str
    flavor: str = ""

    @property
    def sort_key(self) -> Tuple[Tuple[Tuple[VersionPart, ...], str], str]:
        return version_key(self.version), self.flavor

    def __lt__(self, other):
        if not isinstance(other, Release):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __str__(self):
        if self.flavor:
            return f"{self.version}-{self.flavor}"
        return self.version


def parse_release(text: str) -> Release:
    """
    Parse a release string such as the output of 'uname -r'.

    Args:
        text: Release string (e.g., '5.15.0-82-generic')

    Returns:
        Release: Parsed release

    Raises:
        ValueError: If the string is not a kernel release
    """
    match = _RELEASE_RE.match(text.strip())
    if not match:
        raise ValueError(f"Invalid kernel release: {text.strip()!r}")
    return Release(match.group('version'), match.group('flavor') or "")


def compare_releases(release1: Union[Release, str], release2: Union[Release, str]) -> int:
    """
    Compare two kernel releases.

    Versions are compared numerically component by component, then the
    flavors are compared as strings.

    Args:
        release1: First release (e.g., '4.9.0-generic')
        release2: Second release (e.g., '4.10.0-generic')

    Returns:
        int: -1 if release1 < release2, 0 if equal, 1 if release1 > release2
    """
    if isinstance(release1, str):
        release1 = parse_release(release1)
    if isinstance(release2, str):
        release2 = parse_release(release2)

    if release1 < release2:
        return -1
    elif release2 < release1:
        return 1
    return 0


class ReleaseSet:
    """
    Immutable, duplicate-free set of releases in ascending order.

    Set operations return new ReleaseSet instances, so results are always
    normalized regardless of the order of the inputs.
    """

    __slots__ = ("_releases",)

    def __init__(self, releases: Iterable[Union[Release, str]] = ()):
        items = set()
        for release in releases:
            if isinstance(release, str):
                if not release.strip():
                    continue
                release = parse_release(release)
            items.add(release)
        self._releases = tuple(sorted(items))

    def __iter__(self) -> Iterator[Release]:
        return iter(self._releases)

    def __len__(self) -> int:
        return len(self._releases)

    def __contains__(self, release) -> bool:
        if isinstance(release, str):
            release = parse_release(release)
        return release in self._releases

    def __eq__(self, other):
        if not isinstance(other, ReleaseSet):
            return NotImplemented
        return self._releases == other._releases

    def __hash__(self):
        return hash(self._releases)

    def __repr__(self):
        return f"ReleaseSet([{', '.join(repr(str(r)) for r in self._releases)}])"

    def __or__(self, other: "ReleaseSet") -> "ReleaseSet":
        return self.union(other)

    def __sub__(self, other: "ReleaseSet") -> "ReleaseSet":
        return self.difference(other)

    def __and__(self, other: "ReleaseSet") -> "ReleaseSet":
        return self.intersection(other)

    def __le__(self, other: "ReleaseSet") -> bool:
        return all(release in other for release in self)

    def union(self, *others: Iterable[Release]) -> "ReleaseSet":
        releases = list(self._releases)
        for other in others:
            releases.extend(other)
        return ReleaseSet(releases)

    def difference(self, other: Iterable[Release]) -> "ReleaseSet":
        excluded = set(other)
        return ReleaseSet(r for r in self._releases if r not in excluded)

    def intersection(self, other: Iterable[Release]) -> "ReleaseSet":
        included = set(other)
        return ReleaseSet(r for r in self._releases if r in included)

    def of_flavor(self, flavor: str) -> "ReleaseSet":
        """Return the releases of a single flavor."""
        return ReleaseSet(r for r in self._releases if r.flavor == flavor)

    def to_strings(self) -> List[str]:
        return [str(r) for r in self._releases]
