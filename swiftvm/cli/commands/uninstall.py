"""
Uninstall command implementation.

Removes every installed toolchain matching a selector.
"""

import logging

from swiftvm.cli.utils import build_manager, confirm, safe_print
from swiftvm.core.exceptions import NoMatchingVersion
from swiftvm.core.version import parse_selector

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the uninstall command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    selector = parse_selector(args.selector)
    manager = build_manager(args)
    config = manager.load_config()

    targets = [v for v in config.installed_versions() if selector.matches(v)]
    if not targets:
        raise NoMatchingVersion(args.selector, "installed toolchains")

    safe_print("The following toolchains will be uninstalled:")
    for version in targets:
        safe_print(f"  {version.name}")
    confirm("Proceed?", assume_yes=args.assume_yes)

    for version in targets:
        manager.uninstall(version)
        safe_print(f"{version.name} uninstalled")

    if config.in_use is not None and config.in_use in targets:
        safe_print(
            "The toolchain in use was removed; run 'swiftvm use' to choose another"
        )
    return 0
