"""
Repair command implementation.

Reconciles the toolchain store with the config after interrupted operations.
"""

import logging

from swiftvm.cli.utils import build_manager, print_warning, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the repair command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 when consistent, 1 when something needs attention)
    """
    report = build_manager(args).repair()

    for name in report.adopted:
        safe_print(f"Adopted interrupted install of {name}")
    for name in report.completed_uninstalls:
        safe_print(f"Completed interrupted uninstall of {name}")
    for path in report.removed_staging:
        safe_print(f"Removed leftover {path}")

    for path in report.orphaned_paths:
        print_warning(f"{path} is not tracked by swiftvm; remove it or install over it")
    for path in report.unreadable_markers:
        print_warning(f"Removed unreadable pending marker {path}")
    for path in report.missing_paths:
        print_warning(f"Installed toolchain directory {path} is missing")

    if report.has_flagged:
        return 1

    if not report.changed:
        safe_print("Nothing to repair")
    return 0
