"""
Use command implementation.

Selects an installed toolchain for the current project or as the global
default, or shows the one in use.
"""

import logging
from pathlib import Path

from swiftvm.cli.utils import build_manager, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the use command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    manager = build_manager(args)
    cwd = Path.cwd()

    if args.selector:
        result = manager.use(args.selector, cwd=cwd, global_default=args.global_default)
        if not args.print_location:
            if not result.changed:
                safe_print(f"{result.version.name} is already in use")
            elif result.version_file is not None:
                safe_print(f"Set {result.version.name} in {result.version_file}")
            else:
                safe_print(f"Set the global default to {result.version.name}")
            return 0

    selection = manager.select(cwd, global_default=args.global_default)
    selection.raise_for_error()
    if selection.version is None:
        safe_print("No toolchain is in use")
        return 0

    if args.print_location:
        safe_print(str(manager.load_config().get(selection.version).path))
    elif not args.selector:
        safe_print(f"{selection.version.name} {selection.describe()}")
    return 0
