"""
Command-line interface for kernpurge.

Provides argument parsing and orchestrates the kernel purge workflow.
"""

import argparse
import logging
import sys
import traceback
from typing import Optional

from . import __version__
from .analyzer import (
    AnalysisResult,
    Policy,
    analyze_kernels,
    broken_packages,
    selection_candidates,
    with_selection,
)
from .boot import clear_boot, deferred_bootloader_hooks, regenerate_bootloader
from .detector import SystemState, gather_system_state
from .dialog import INTERFACES, DialogCancelled, checklist
from .release import ReleaseSet
from .remover import (
    RemovalStatus,
    check_sudo,
    fix_broken,
    generate_purge_command,
    purge_packages,
)
from .reporter import Reporter
from .utils import needs_reboot, setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_PRIVILEGE = 2
EXIT_FAILURE = 3
EXIT_CANCELLED = 4


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors with exit code 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def _keep_count(value: str) -> int:
    try:
        count = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid keep count: {value!r}")
    if count < 0:
        raise argparse.ArgumentTypeError(f"keep count must not be negative: {count}")
    return count


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = _ArgumentParser(
        prog="kernpurge",
        description=(
            "Purge obsolete kernel releases. Without options only packages of "
            "kernels that are no longer installed are purged."
        ),
        epilog=(
            "Examples:\n"
            "  kernpurge --keep 1 --simulate   # see what keeping one older release would purge\n"
            "  kernpurge --choose              # pick the releases to purge from a list"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-k", "--keep",
        type=_keep_count,
        metavar="N",
        help="keep N releases older than the latest release of each flavor",
    )

    parser.add_argument(
        "-a", "--auto-only",
        action="store_true",
        help="only purge releases that were installed automatically (requires --keep)",
    )

    parser.add_argument(
        "-m", "--manual",
        action="store_true",
        help="purge manually installed releases, keeping automatic ones",
    )

    parser.add_argument(
        "-c", "--choose",
        action="store_true",
        help="choose the releases to purge from a checklist",
    )

    parser.add_argument(
        "-b", "--clear-boot",
        action="store_true",
        help="remove /boot files of the releases to purge before purging",
    )

    parser.add_argument(
        "-f", "--fix",
        action="store_true",
        help="fix a broken package state, then purge leftover packages",
    )

    parser.add_argument(
        "-s", "--simulate",
        action="store_true",
        help="show what would be purged without changing anything",
    )

    parser.add_argument(
        "-y", "--yes",
        action="store_true",
        help="do not ask for confirmation",
    )

    parser.add_argument(
        "-n", "--no-legend",
        action="store_true",
        help="do not print the legend of the release markers",
    )

    parser.add_argument(
        "-o", "--optimize",
        action="store_true",
        help="update the bootloader once after the purge instead of per package",
    )

    parser.add_argument(
        "-i", "--interface",
        choices=INTERFACES,
        help="checklist front end for --choose (default: first one installed)",
    )

    parser.add_argument(
        "-d", "--debug",
        action="store_true",
        help="print debug messages and tracebacks",
    )

    return parser


def validate_args(parser: argparse.ArgumentParser, args) -> None:
    """
    Reject invalid option combinations.

    Exits with EXIT_USAGE through parser.error().
    """
    if args.auto_only and args.keep is None:
        parser.error("--auto-only requires --keep")

    if args.keep is not None and args.manual:
        parser.error("--keep and --manual cannot be used together")

    if args.fix:
        conflicting = [
            flag for flag, used in (
                ("--keep", args.keep is not None),
                ("--manual", args.manual),
                ("--choose", args.choose),
                ("--yes", args.yes),
                ("--optimize", args.optimize),
            ) if used
        ]
        if conflicting:
            parser.error(f"--fix cannot be used with {', '.join(conflicting)}")


def policy_from_args(args) -> Policy:
    return Policy(
        keep=args.keep,
        auto_only=args.auto_only,
        manual=args.manual,
        choose=args.choose,
    )


def _require_root(args) -> bool:
    if args.simulate or check_sudo():
        return True
    print("\nError: Root privileges required to purge packages.", file=sys.stderr)
    print("Please run with sudo, or use --simulate.", file=sys.stderr)
    return False


def _choose(args, reporter: Reporter, state: SystemState, result: AnalysisResult) -> AnalysisResult:
    """
    Let the user pick the releases to purge.

    The selection replaces the computed keep set entirely.
    """
    choices = selection_candidates(state, result)
    if not choices:
        print("Only the current release is installed; there is nothing to choose.")
        return result

    text = "Choose the releases to purge. Checked releases will be purged."
    if reporter.legend:
        text += "\n\n" + reporter.legend_text()

    selected = checklist(
        choices,
        title=f"kernpurge {__version__}",
        text=text,
        interface=args.interface,
    )
    return with_selection(state, selected)


def _confirm(count: int) -> bool:
    print(f"\nAbout to purge {count} package(s).")
    response = input("Continue? [y/N]: ").strip().lower()
    return response in ('y', 'yes')


def _handle_purge(args, reporter: Reporter, result: AnalysisResult) -> int:
    """
    Purge the packages of the analysis result.

    Returns:
        int: Exit code
    """
    packages = result.all_packages

    if not packages:
        if args.clear_boot:
            # Raises when /boot is full and nothing can be purged
            clear_boot(result.purge, result.keep, simulate=args.simulate)
        reporter.print_nothing_to_do()
        return EXIT_OK

    if not _require_root(args):
        return EXIT_PRIVILEGE

    if not args.yes and not args.simulate:
        if not _confirm(len(packages)):
            print("Aborted. Nothing was changed.")
            return EXIT_CANCELLED
        print()

    update_bootloader = args.optimize
    if args.clear_boot:
        files = clear_boot(result.purge, result.keep, simulate=args.simulate)
        reporter.print_boot_files(files, simulate=args.simulate)
        update_bootloader = update_bootloader or bool(files)

    reporter.print_command(generate_purge_command(packages, simulate=args.simulate), simulate=args.simulate)

    # /boot files are already gone, so grub is regenerated even if apt fails
    try:
        if args.optimize:
            with deferred_bootloader_hooks(simulate=args.simulate):
                results = purge_packages(packages, simulate=args.simulate)
        else:
            results = purge_packages(packages, simulate=args.simulate)
    finally:
        if update_bootloader:
            regenerate_bootloader(simulate=args.simulate)

    for pkg, status in results:
        reporter.print_removal_progress(pkg, status)

    purged = sum(1 for _, status in results if status != RemovalStatus.FAILED)
    failed = len(results) - purged
    reporter.print_summary(purged, failed, simulate=args.simulate)

    if not args.simulate and needs_reboot():
        reporter.print_reboot_notice()

    return EXIT_OK


def _run_fix(args, reporter: Reporter, state: SystemState) -> int:
    """
    Repair a broken package state, then purge leftover packages.

    When apt cannot repair the state by itself, the broken and orphaned
    kernel packages are purged first and the repair is retried once.
    """
    if not _require_root(args):
        return EXIT_PRIVILEGE

    print("Fixing broken package state...")
    result = analyze_kernels(state, Policy())

    if not fix_broken(simulate=args.simulate):
        protected = result.keep | state.hold | ReleaseSet([state.current])
        blocking = sorted(set(broken_packages(state.index, protected)) | set(result.orphans))
        if not blocking:
            raise RuntimeError("Unable to fix the broken package state")

        logger.warning("Purging %d broken or orphaned package(s) first", len(blocking))
        reporter.print_command(generate_purge_command(blocking, simulate=args.simulate), simulate=args.simulate)
        purge_packages(blocking, simulate=args.simulate)

        if not fix_broken(simulate=args.simulate):
            raise RuntimeError("Unable to fix the broken package state")
        # The packages are gone now; look again
        state = gather_system_state()
        result = analyze_kernels(state, Policy())

    print()
    reporter.print_analysis(result, state)
    return _handle_purge(args, reporter, result)


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        int: Exit code:
            0 = success
            1 = invalid command line
            2 = insufficient privileges (not root)
            3 = operational failure
            4 = cancelled by the user, nothing changed
    """
    parser = create_parser()

    if argv is None:
        argv = sys.argv[1:]

    args = parser.parse_args(argv)
    validate_args(parser, args)

    setup_logging(args.debug)
    reporter = Reporter(legend=not args.no_legend)
    policy = policy_from_args(args)

    try:
        print("kernpurge v{}".format(__version__))
        state = gather_system_state()

        if args.fix:
            return _run_fix(args, reporter, state)

        result = analyze_kernels(state, policy)
        if policy.choose:
            result = _choose(args, reporter, state, result)

        print()
        reporter.print_analysis(result, state)
        return _handle_purge(args, reporter, result)

    except DialogCancelled:
        print("Cancelled. Nothing was changed.", file=sys.stderr)
        return EXIT_CANCELLED
    except PermissionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_PRIVILEGE
    except (RuntimeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.debug("Failure details", exc_info=True)
        return EXIT_FAILURE
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        traceback.print_exc()
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
