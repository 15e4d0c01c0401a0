"""
Init command implementation.

Sets up swiftvm for the current user: directories, config, shell profile and
the latest stable toolchain.
"""

import logging

from swiftvm.cli.utils import (
    build_manager,
    confirm,
    format_success_message,
    safe_print,
)
from swiftvm.toolchain.engine import InitOptions

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the init command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    logger.debug(f"Arguments: {args}")
    manager = build_manager(args)
    paths = manager.paths

    options = InitOptions(
        assume_yes=args.assume_yes,
        skip_install=args.skip_install,
        no_modify_profile=args.no_modify_profile,
        overwrite=args.overwrite,
        verify=not args.no_verify,
        platform_hint=args.platform,
        home_dir=paths.home_dir,
        bin_dir=paths.bin_dir,
        toolchains_dir=paths.toolchains_dir,
    )

    if not options.assume_yes:
        safe_print("swiftvm will be set up with these locations:")
        safe_print(f"  Home directory:       {paths.home_dir}")
        safe_print(f"  Executables:          {paths.bin_dir}")
        safe_print(f"  Toolchains:           {paths.toolchains_dir}")
        if not options.no_modify_profile:
            safe_print("  Your shell profile will be updated to load swiftvm")
        if not options.skip_install:
            safe_print("  The latest stable Swift toolchain will be installed")
        confirm("Proceed?", assume_yes=False)

    result = manager.init(options)
    _print_success_message(manager, result)
    return 0


def _print_success_message(manager, result):
    details = {
        "Platform": str(result.platform),
        "Config": str(result.config_path),
    }
    if result.install is not None:
        details["Toolchain in use"] = result.install.version.name

    next_steps = []
    if result.profile_file is not None:
        next_steps.append("Open a new shell, or load swiftvm now with:")
        next_steps.append(f"  . {manager.paths.env_sh}")
    else:
        next_steps.append(f"Load swiftvm in your shell with: . {manager.paths.env_sh}")
    if result.install is None:
        next_steps.append("Install a toolchain with: swiftvm install latest")
    if result.install is not None and result.install.post_install_script is not None:
        next_steps.append(
            f"Run {result.install.post_install_script} with root privileges to "
            "install missing system packages"
        )

    safe_print(
        format_success_message(
            "swiftvm initialized successfully!", details, next_steps=next_steps
        )
    )
