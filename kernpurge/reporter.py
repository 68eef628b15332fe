"""
Output reporting module.

Provides apt-style formatted output of the releases, the packages to
purge and the progress of the purge.
"""

from typing import List

from .analyzer import MARKER_LEGEND, AnalysisResult, compute_markers
from .remover import RemovalStatus


class Reporter:
    """
    Handles formatted output for kernpurge operations.

    Provides apt-style output; the marker legend can be switched off.
    """

    def __init__(self, legend: bool = True):
        """
        Initialize the reporter.

        Args:
            legend: Print the legend explaining the release markers
        """
        self.legend = legend

    def legend_text(self) -> str:
        return "\n".join(f"  {code}  {meaning}" for code, meaning in MARKER_LEGEND)

    def print_analysis(self, result: AnalysisResult, state) -> None:
        """
        Print the installed releases and what will happen to them.

        Args:
            result: Analysis results to display
            state: detector.SystemState the results were computed from
        """
        print("Reading package lists... Done")
        print()
        print(f"Current release: {result.current}")

        if result.installed:
            print()
            print("Installed releases:")
            width = max(len(str(r)) for r in result.installed)
            for release in result.installed:
                action = "purge" if release in result.purge else "keep"
                markers = compute_markers(
                    release, state.latest, state.hold, state.manual, state.current,
                )
                print(f"  {action:<6} {str(release):<{width}}  {markers.codes()}".rstrip())

            if self.legend:
                print()
                print("Legend:")
                print(self.legend_text())

        print()
        packages = result.all_packages
        if packages:
            print("The following packages will be PURGED:")
            for pkg in packages:
                suffix = " (orphan)" if pkg in result.orphans and pkg not in result.packages else ""
                print(f"  {pkg}{suffix}")
            print()
            print(f"0 upgraded, 0 newly installed, {len(packages)} to purge.")
        else:
            print("0 upgraded, 0 newly installed, 0 to purge.")

    def print_command(self, command: List[str], simulate: bool = False) -> None:
        """
        Print the command that will be executed.

        Args:
            command: Command as list of arguments
            simulate: Whether the purge is only simulated
        """
        cmd_str = " ".join(command)
        print()
        if simulate:
            print(f"[SIMULATE] Executing: {cmd_str}")
        else:
            print(f"Executing: {cmd_str}")
        print()

    def print_removal_progress(self, package: str, status: RemovalStatus) -> None:
        if status == RemovalStatus.SUCCESS:
            print(f"Purged {package}")
        elif status == RemovalStatus.FAILED:
            print(f"Failed to purge {package}")
        elif status == RemovalStatus.SKIPPED:
            print(f"Would purge {package}")

    def print_boot_files(self, files: List[str], simulate: bool = False) -> None:
        if not files:
            return
        verb = "Would remove" if simulate else "Removed"
        print(f"{verb} {len(files)} file(s) from /boot:")
        for path in files:
            print(f"  {path}")
        print()

    def print_summary(self, purged: int, failed: int, simulate: bool = False) -> None:
        """
        Print final summary statistics.

        Args:
            purged: Number of packages purged
            failed: Number of packages that failed to purge
            simulate: Whether the purge was only simulated
        """
        print()
        if simulate:
            print(f"[SIMULATE] {purged} package(s) would be purged. Nothing was changed.")
            return

        if purged > 0:
            print(f"Successfully purged {purged} package(s).")
        if failed > 0:
            print(f"Failed to purge {failed} package(s).")
        if purged > 0 or failed > 0:
            print()
            print("Done.")

    def print_nothing_to_do(self) -> None:
        print("No obsolete kernel packages found.")

    def print_reboot_notice(self) -> None:
        """Print notice that a reboot is recommended."""
        print()
        print("A reboot is required to use the updated kernel.")
        print("Run 'sudo reboot' to restart the system.")
