"""
Install command implementation.

Installs the toolchain matching a selector.
"""

import logging
from pathlib import Path

from swiftvm.cli.utils import ProgressPrinter, build_manager, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the install command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    logger.debug(f"Arguments: {args}")
    manager = build_manager(args)

    result = manager.resolve_and_install(
        args.selector,
        activate=args.use,
        verify=not args.no_verify,
        progress_callback=ProgressPrinter(),
        post_install_file=args.post_install_file,
        cwd=Path.cwd(),
    )

    if result.already_installed:
        safe_print(f"{result.version.name} is already installed at {result.path}")
    else:
        safe_print(f"{result.version.name} installed successfully")

    if result.post_install_script is not None:
        safe_print(
            f"Additional system packages are needed; run {result.post_install_script} "
            "with root privileges"
        )
    return 0
