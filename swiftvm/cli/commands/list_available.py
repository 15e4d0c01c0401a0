"""
List-available command implementation.

Lists toolchains published for this platform.
"""

import logging

from swiftvm.cli.utils import build_manager, format_listings, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the list-available command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    manager = build_manager(args)
    listings = manager.list_available(args.selector)

    if not listings and args.format == "text":
        safe_print("No matching toolchains are available for this platform")
        return 0

    safe_print(format_listings(listings, args.format))
    return 0
