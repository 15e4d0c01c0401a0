"""
List command implementation.

Lists installed toolchains.
"""

import logging

from swiftvm.cli.utils import build_manager, format_listings, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the list command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    manager = build_manager(args)
    listings = manager.list_installed(args.selector)

    if not listings and args.format == "text":
        if args.selector:
            safe_print(f"No installed toolchains match '{args.selector}'")
        else:
            safe_print("No toolchains are installed")
        return 0

    safe_print(format_listings(listings, args.format))
    return 0
