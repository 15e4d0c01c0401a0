"""
Update command implementation.

Replaces a toolchain with the newest release of its series.
"""

import logging

from swiftvm.cli.utils import ProgressPrinter, build_manager, confirm, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the update command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    manager = build_manager(args)

    plan = manager.plan_update(args.selector)
    if plan is None:
        safe_print("Already up to date")
        return 0

    safe_print(f"{plan.current.name} will be replaced by {plan.target.name}")
    confirm("Proceed?", assume_yes=args.assume_yes)

    result = manager.apply_update(
        plan,
        verify=not args.no_verify,
        progress_callback=ProgressPrinter(),
        post_install_file=args.post_install_file,
    )

    safe_print(f"Updated to {result.version.name}")
    if result.post_install_script is not None:
        safe_print(
            f"Additional system packages are needed; run {result.post_install_script} "
            "with root privileges"
        )
    return 0
