"""
Unlink command implementation.

Deactivates the active toolchain without uninstalling it.
"""

import logging

from swiftvm.cli.utils import build_manager

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the unlink command.

    Returns:
        Exit code (0 for success)
    """
    build_manager(args).unlink()
    return 0
