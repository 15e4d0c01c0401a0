"""
List-dependencies command implementation.

Shows the system packages Swift toolchains need on this platform.
"""

import logging

from swiftvm.cli.utils import build_manager, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the list-dependencies command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    manager = build_manager(args)
    descriptor = manager.load_config().platform
    platform = manager.platform

    package_manager, packages = platform.system_dependencies(descriptor)
    if not packages:
        safe_print(f"No system packages are required on {descriptor}")
        return 0

    missing = set(platform.missing_system_packages(descriptor))
    shown = [p for p in packages if p in missing] if args.missing else packages

    if not shown:
        safe_print("All required system packages are installed")
        return 0

    for package in shown:
        suffix = " (missing)" if package in missing and not args.missing else ""
        safe_print(f"{package}{suffix}")

    if missing:
        safe_print("")
        safe_print(f"Install with: {package_manager} -y install {' '.join(sorted(missing))}")
    return 0
