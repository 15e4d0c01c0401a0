"""
Link command implementation.

Puts a toolchain back on PATH after unlink.
"""

import logging
from pathlib import Path

from swiftvm.cli.utils import build_manager, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the link command.

    Returns:
        Exit code (0 for success)
    """
    result = build_manager(args).link(args.selector, cwd=Path.cwd())
    if result.changed:
        safe_print(f"Linked {result.version.name}")
    else:
        safe_print(f"{result.version.name} is already linked")
    return 0
