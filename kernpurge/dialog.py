"""
Interactive checklist.

Presents releases in a whiptail or dialog checklist and returns the
tags the user confirmed.
"""

import logging
import shutil
import subprocess
from typing import List, Optional, Sequence, Tuple

from .utils import format_command, which

logger = logging.getLogger(__name__)

INTERFACES = ("whiptail", "dialog")

MIN_COLUMNS = 60
MIN_LINES = 15

# Exit statuses of whiptail/dialog for Cancel and Esc
CANCEL_CODES = (1, 255)


class DialogCancelled(Exception):
    """The user cancelled the checklist."""


def choose_interface(preferred: Optional[str] = None) -> str:
    """
    Pick the checklist front end.

    Args:
        preferred: 'whiptail' or 'dialog'; None picks the first installed

    Returns:
        str: Name of the front end

    Raises:
        RuntimeError: If the front end is not installed
    """
    candidates = [preferred] if preferred else list(INTERFACES)
    for name in candidates:
        if which(name):
            return name
    raise RuntimeError(f"No dialog front end found (tried {', '.join(candidates)})")


def check_terminal_size(columns: int = MIN_COLUMNS, lines: int = MIN_LINES) -> Tuple[int, int]:
    """
    Make sure the terminal can hold the checklist.

    Returns:
        Tuple[int, int]: (columns, lines) of the terminal

    Raises:
        RuntimeError: If the terminal is too small
    """
    size = shutil.get_terminal_size(fallback=(0, 0))
    if size.columns < columns or size.lines < lines:
        raise RuntimeError(
            f"Terminal is too small ({size.columns}x{size.lines}); "
            f"at least {columns}x{lines} is needed"
        )
    return size.columns, size.lines


def build_checklist_command(
    interface: str,
    title: str,
    text: str,
    items: Sequence[Tuple[str, str, bool]],
    height: int,
    width: int,
) -> List[str]:
    """
    Build the whiptail/dialog checklist command line.

    The selection is written one tag per line to stderr.
    """
    list_height = max(1, min(len(items), height - 8))
    cmd = [
        interface,
        "--title", title,
        "--separate-output",
        "--checklist", text,
        str(height), str(width), str(list_height),
    ]
    for tag, label, selected in items:
        cmd.extend([tag, label or "-", "on" if selected else "off"])
    return cmd


def checklist(
    items: Sequence[Tuple[str, str, bool]],
    title: str,
    text: str = "",
    interface: Optional[str] = None,
) -> List[str]:
    """
    Show a checklist and return the confirmed tags.

    Args:
        items: (tag, label, preselected) triples
        title: Dialog title
        text: Text shown above the list
        interface: 'whiptail' or 'dialog'

    Returns:
        List[str]: Tags the user confirmed, in dialog order

    Raises:
        DialogCancelled: If the user cancelled the dialog
        RuntimeError: If the dialog could not be shown
    """
    columns, lines = check_terminal_size()
    front_end = choose_interface(interface)

    cmd = build_checklist_command(
        front_end, title, text, items, height=lines - 2, width=min(columns - 4, 76),
    )
    logger.debug("Executing command: %s", format_command(cmd))

    try:
        # The dialog draws on the terminal; the answer comes on stderr
        result = subprocess.run(cmd, stderr=subprocess.PIPE, text=True, check=False)
    except OSError as e:
        raise RuntimeError(f"Failed to run {front_end}: {e}")

    if result.returncode in CANCEL_CODES:
        raise DialogCancelled("Selection cancelled by user")
    if result.returncode != 0:
        raise RuntimeError(f"{front_end} failed with exit code {result.returncode}")

    known = {tag for tag, _, _ in items}
    selected = []
    for line in result.stderr.splitlines():
        tag = line.strip().strip('"')
        if tag in known:
            selected.append(tag)
    return selected
