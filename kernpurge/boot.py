"""
Boot partition handling.

Frees /boot before a purge, regenerates the bootloader configuration and
defers the per-kernel bootloader hooks while purging.
"""

import glob
import logging
import os
import stat
from contextlib import contextmanager
from typing import Dict, Iterator, List, Sequence

from .release import Release, ReleaseSet
from .utils import run_visible, which

logger = logging.getLogger(__name__)

BOOT_DIR = "/boot"
BOOT_FILE_PREFIXES = ("vmlinuz", "initrd.img", "System.map", "config", "abi", "retpoline")

BOOTLOADER_COMMAND = "update-grub"
BOOTLOADER_HOOKS = (
    "/etc/kernel/postinst.d/zz-update-grub",
    "/etc/kernel/postrm.d/zz-update-grub",
)

# An initramfs update needs room for at least one new image
MIN_FREE_BYTES = 64 * 1024 * 1024
MIN_FREE_INODES = 32


def boot_files_for(release: Release, boot_dir: str = BOOT_DIR) -> List[str]:
    """
    List the files in /boot that belong to a release.

    Includes backups such as initrd.img-<release>.old-dkms.
    """
    files = []
    for prefix in BOOT_FILE_PREFIXES:
        base = os.path.join(boot_dir, f"{prefix}-{release}")
        if os.path.isfile(base):
            files.append(base)
        files.extend(p for p in glob.glob(glob.escape(base) + ".*") if os.path.isfile(p))
    return sorted(files)


def boot_space_low(boot_dir: str = BOOT_DIR) -> bool:
    """
    Check whether /boot is short of free space or inodes.

    File systems that do not report inodes (f_files == 0) are only
    checked for space.
    """
    try:
        st = os.statvfs(boot_dir)
    except OSError as e:
        logger.warning("Cannot read file system statistics of %s: %s", boot_dir, e)
        return False

    free_bytes = st.f_bavail * st.f_frsize
    if free_bytes < MIN_FREE_BYTES:
        logger.debug("%s has %d bytes free", boot_dir, free_bytes)
        return True
    if st.f_files and st.f_favail < MIN_FREE_INODES:
        logger.debug("%s has %d inodes free", boot_dir, st.f_favail)
        return True
    return False


def clear_boot(
    purge: ReleaseSet,
    keep: ReleaseSet,
    simulate: bool = False,
    boot_dir: str = BOOT_DIR,
) -> List[str]:
    """
    Remove the /boot files of releases that are about to be purged.

    Frees room so the kernel hooks run by the purge do not fail on a
    full /boot.

    Args:
        purge: Releases to purge
        keep: Releases to keep; their files are never touched
        simulate: Only report what would be removed
        boot_dir: Boot directory

    Returns:
        List[str]: Files removed (or that would be removed)

    Raises:
        RuntimeError: If /boot is full and nothing can be freed, or a file
            cannot be removed
    """
    if not purge:
        if boot_space_low(boot_dir):
            raise RuntimeError(f"{boot_dir} is full and there is no release to purge")
        return []

    removed = []
    for release in purge:
        if release in keep:
            continue
        for path in boot_files_for(release, boot_dir):
            if simulate:
                logger.info("Would remove %s", path)
            else:
                logger.info("Removing %s", path)
                try:
                    os.remove(path)
                except OSError as e:
                    raise RuntimeError(f"Failed to remove {path}: {e}")
            removed.append(path)
    return removed


def regenerate_bootloader(simulate: bool = False, command: str = BOOTLOADER_COMMAND) -> bool:
    """
    Regenerate the bootloader configuration.

    Returns:
        bool: True if the command ran (or would run), False if missing

    Raises:
        RuntimeError: If the command fails
    """
    if not which(command):
        logger.info("%s not found; bootloader configuration not updated", command)
        return False
    if simulate:
        logger.info("Would run %s", command)
        return True

    code = run_visible([command])
    if code != 0:
        raise RuntimeError(f"{command} failed with exit code {code}")
    return True


@contextmanager
def deferred_bootloader_hooks(
    simulate: bool = False,
    hooks: Sequence[str] = BOOTLOADER_HOOKS,
) -> Iterator[List[str]]:
    """
    Disable the bootloader hooks of kernel packages for the duration.

    Without this, every purged kernel package regenerates the bootloader
    configuration. The original modes are restored on exit.

    Yields:
        List[str]: Hooks that were disabled
    """
    saved: Dict[str, int] = {}
    for hook in hooks:
        try:
            mode = os.stat(hook).st_mode
        except FileNotFoundError:
            continue
        if not mode & stat.S_IXUSR:
            continue
        saved[hook] = stat.S_IMODE(mode)
        if not simulate:
            logger.debug("Disabling %s", hook)
            os.chmod(hook, saved[hook] & ~0o111)

    try:
        yield list(saved)
    finally:
        if not simulate:
            for hook, mode in saved.items():
                logger.debug("Restoring %s", hook)
                os.chmod(hook, mode)
