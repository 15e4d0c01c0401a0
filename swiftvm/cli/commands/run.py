"""
Run command implementation.

Runs a command with a chosen toolchain first on PATH and exits with the
command's status.
"""

import logging
from pathlib import Path

from swiftvm.cli.utils import build_manager

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the run command.

    Returns:
        The command's exit status
    """
    return build_manager(args).run_command(args.run_command, cwd=Path.cwd())
