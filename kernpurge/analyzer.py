"""
Kernel analysis module.

The release set calculator: derives from the installed, latest, manual,
held and current releases which releases to keep and which to purge,
and translates the releases to purge into package names.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

from .index import SHARED_FLAVORS, VARIANT_SUFFIXES, PackageIndex
from .release import Release, ReleaseSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Policy:
    """
    Selection policy derived from the command line.

    Attributes:
        keep: Number of releases to keep before each latest release;
            None keeps every installed release
        auto_only: Never purge manually installed releases
        manual: Purge manually installed releases only
        choose: Let the user choose the releases to purge
    """
    keep: Optional[int] = None
    auto_only: bool = False
    manual: bool = False
    choose: bool = False


@dataclass(frozen=True)
class Markers:
    """Derived per-release annotations."""
    latest: bool = False
    held: bool = False
    manual: bool = False
    current: bool = False

    def codes(self) -> str:
        """Short marker string, e.g. 'L M'."""
        flags = [
            ("C", self.current),
            ("L", self.latest),
            ("H", self.held),
            ("M", self.manual),
        ]
        return " ".join(code for code, on in flags if on)


MARKER_LEGEND = [
    ("C", "currently booted"),
    ("L", "latest release needed by a meta-package"),
    ("H", "held"),
    ("M", "manually installed"),
]


@dataclass
class AnalysisResult:
    """
    Result of kernel analysis.

    Attributes:
        current: Currently booted release
        installed: Releases with an installed kernel image
        keep: Releases to keep
        purge: Releases to purge
        packages: Packages of the releases to purge
        orphans: Packages left behind by releases no longer installed
    """
    current: Release
    installed: ReleaseSet
    keep: ReleaseSet
    purge: ReleaseSet
    packages: List[str] = field(default_factory=list)
    orphans: List[str] = field(default_factory=list)

    @property
    def all_packages(self) -> List[str]:
        return sorted(set(self.packages) | set(self.orphans))


def keep_latest(installed: ReleaseSet, latest: ReleaseSet, count: int) -> ReleaseSet:
    """
    Keep each latest release and the releases immediately before it.

    For every latest release, the installed releases of the same flavor
    that sort at or before it are taken in order; the latest one and the
    `count` installed releases directly preceding it are kept.

    Args:
        installed: Installed releases
        latest: Latest needed releases, one or more per flavor
        count: Number of preceding releases to keep

    Returns:
        ReleaseSet: Releases protected by the rule
    """
    if count < 0:
        raise ValueError(f"Keep count must not be negative: {count}")

    kept = []
    for newest in latest:
        candidates = [r for r in installed.of_flavor(newest.flavor) if not newest < r]
        if candidates and candidates[-1] == newest:
            kept.append(newest)
            candidates = candidates[:-1]
        if count:
            kept.extend(candidates[-count:])
    return ReleaseSet(kept)


def compute_keep(
    installed: ReleaseSet,
    latest: ReleaseSet,
    manual: ReleaseSet,
    hold: ReleaseSet,
    current: Release,
    policy: Policy,
) -> ReleaseSet:
    """
    Compute the releases to keep under a policy.

    Returns:
        ReleaseSet: Releases to keep, always a subset of installed
    """
    current_set = ReleaseSet([current])

    if policy.manual:
        keep = current_set | (installed - manual) | hold
    elif policy.keep is None:
        keep = installed
    else:
        keep = keep_latest(installed, latest, policy.keep) | current_set | hold
        if policy.auto_only:
            keep = keep | manual

    return keep & installed


def compute_purge(installed: ReleaseSet, keep: ReleaseSet) -> ReleaseSet:
    return installed - keep


def kept_patterns(releases: Iterable[Release]) -> List[Pattern]:
    """
    Build the negative-match patterns of kept releases.

    A package matching '-<version>(-<flavor>[-dbg|-dbgsym|-unsigned]|-common|-common-rt)?$'
    belongs to a kept release, either directly or as a package shared by
    its version.
    """
    shared = "|".join(f"-{re.escape(flavor)}" for flavor in SHARED_FLAVORS)
    variants = "|".join(re.escape(suffix) for suffix in VARIANT_SUFFIXES)
    patterns = []
    for release in releases:
        suffixes = [shared]
        if release.flavor:
            suffixes.insert(0, f"-{re.escape(release.flavor)}(?:{variants})?")
        alternatives = "|".join(suffixes)
        patterns.append(re.compile(rf'-{re.escape(release.version)}(?:{alternatives})?$'))
    return patterns


def _is_protected(name: str, patterns: Sequence[Pattern]) -> bool:
    return any(pattern.search(name) for pattern in patterns)


def packages_to_purge(
    index: PackageIndex,
    purge: ReleaseSet,
    protected: ReleaseSet,
) -> List[str]:
    """
    Translate releases to purge into package names.

    Shared packages still needed by a protected release of the same
    version are excluded. Releases without packages are skipped.

    Args:
        index: Package index
        purge: Releases to purge
        protected: Releases whose packages must stay

    Returns:
        List[str]: Package names, sorted
    """
    patterns = kept_patterns(protected)
    packages = set()
    for release in purge:
        names = index.packages_for(release)
        if not names:
            logger.debug("No packages left for %s", release)
            continue
        packages.update(name for name in names if not _is_protected(name, patterns))
    return sorted(packages)


def orphan_packages(
    index: PackageIndex,
    installed: ReleaseSet,
    protected: ReleaseSet,
    held_packages: Iterable[str] = (),
) -> List[str]:
    """
    Find packages that belong to no installed release.

    These are flavored packages whose image is gone (or only has its
    configuration files left) and shared packages whose version matches
    no installed release.
    """
    patterns = kept_patterns(protected)
    installed_versions = {r.version for r in installed}
    held = set(held_packages)

    orphans = []
    for entry in index.entries:
        if entry.name in held or _is_protected(entry.name, patterns):
            continue
        if entry.is_shared:
            if entry.release.version not in installed_versions:
                orphans.append(entry.name)
        elif entry.release not in installed:
            orphans.append(entry.name)
    return sorted(orphans)


def broken_packages(index: PackageIndex, protected: ReleaseSet) -> List[str]:
    """
    Find kernel packages dpkg left half-installed or half-configured.

    Packages of protected releases are never reported.
    """
    patterns = kept_patterns(protected)
    broken = []
    for entry in index.entries:
        state = entry.status[1:2]
        reinstall_required = entry.status[2:3] == "R"
        if (state in ("H", "U", "F") or reinstall_required) and not _is_protected(entry.name, patterns):
            broken.append(entry.name)
    return sorted(broken)


def compute_markers(
    release: Release,
    latest: ReleaseSet,
    hold: ReleaseSet,
    manual: ReleaseSet,
    current: Release,
) -> Markers:
    return Markers(
        latest=release in latest,
        held=release in hold,
        manual=release in manual,
        current=release == current,
    )


def build_choices(
    installed: ReleaseSet,
    keep: ReleaseSet,
    latest: ReleaseSet,
    hold: ReleaseSet,
    manual: ReleaseSet,
    current: Release,
) -> List[Tuple[str, str, bool]]:
    """
    Build the checklist entries for interactive selection.

    Every installed release except the current one is offered; entries
    scheduled for purge are pre-checked.

    Returns:
        List[Tuple[str, str, bool]]: (tag, label, preselected) triples
    """
    choices = []
    for release in installed:
        if release == current:
            continue
        markers = compute_markers(release, latest, hold, manual, current)
        choices.append((str(release), markers.codes(), release not in keep))
    return choices


def apply_selection(
    installed: ReleaseSet,
    selected: Iterable[str],
    hold: ReleaseSet,
    current: Release,
) -> Tuple[ReleaseSet, ReleaseSet]:
    """
    Turn the user's checklist selection into keep and purge sets.

    Args:
        installed: Installed releases
        selected: Tags the user confirmed
        hold: Held releases, never purged
        current: Current release, never purged

    Returns:
        Tuple[ReleaseSet, ReleaseSet]: (keep, purge)

    Raises:
        ValueError: If nothing was selected
    """
    chosen = ReleaseSet(selected) & installed
    if not chosen:
        raise ValueError("You must choose at least one release to purge")

    blocked = chosen & (hold | ReleaseSet([current]))
    for release in blocked:
        logger.warning("Not purging %s: release is held or currently booted", release)

    purge = chosen - blocked
    return installed - purge, purge


def validate_removal_safety(
    packages_to_remove: List[str],
    current: Release,
    hold: ReleaseSet,
    index: PackageIndex,
) -> Tuple[bool, str]:
    """
    Validate that the proposed package removal is safe.

    Performs safety checks to ensure:
    - No package of the current release is being removed
    - No package of a held release is being removed
    - At least one kernel image will remain after removal

    Returns:
        Tuple[bool, str]: (is_safe, error_message)
    """
    removing = set(packages_to_remove)

    for name in removing & set(index.packages_for(current)):
        return False, f"Safety check failed: {name} belongs to the running kernel {current}"

    for release in hold:
        for name in removing & set(index.packages_for(release)):
            return False, f"Safety check failed: {name} belongs to held release {release}"

    remaining = [
        entry for entry in index.entries
        if entry.is_image and entry.is_installed and not entry.is_shared
        and entry.name not in removing
    ]
    if index.installed_releases() and not remaining:
        return False, "Safety check failed: No kernels would remain after removal"

    return True, ""


def analyze_kernels(state, policy: Policy) -> AnalysisResult:
    """
    Compute keep and purge sets for the system state.

    The interactive override is applied separately with
    with_selection(), after the user has answered the checklist.

    Args:
        state: detector.SystemState snapshot
        policy: Selection policy

    Returns:
        AnalysisResult: Keep/purge partition and packages to purge

    Raises:
        ValueError: If the safety validation fails
    """
    keep = compute_keep(
        state.installed, state.latest, state.manual, state.hold, state.current, policy,
    )
    return _finish(state, keep, compute_purge(state.installed, keep))


def with_selection(state, selected: Iterable[str]) -> AnalysisResult:
    """Recompute the result from an interactive selection."""
    keep, purge = apply_selection(state.installed, selected, state.hold, state.current)
    return _finish(state, keep, purge)


def _finish(state, keep: ReleaseSet, purge: ReleaseSet) -> AnalysisResult:
    protected = keep | state.hold | ReleaseSet([state.current])
    packages = packages_to_purge(state.index, purge, protected)
    orphans = orphan_packages(state.index, state.installed, protected, state.held_packages)

    is_safe, error_msg = validate_removal_safety(
        packages + orphans, state.current, state.hold, state.index,
    )
    if not is_safe:
        raise ValueError(error_msg)

    result = AnalysisResult(
        current=state.current,
        installed=state.installed,
        keep=keep,
        purge=purge,
        packages=packages,
        orphans=orphans,
    )
    logger.debug("Keep: %s", ", ".join(keep.to_strings()))
    logger.debug("Purge: %s", ", ".join(purge.to_strings()))
    return result


def selection_candidates(state, result: AnalysisResult) -> List[Tuple[str, str, bool]]:
    return build_choices(
        state.installed, result.keep, state.latest, state.hold, state.manual, state.current,
    )

