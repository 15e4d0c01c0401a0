"""
swiftvm CLI argument parser.

This module implements the command-line interface for swiftvm using argparse.
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import List, Optional

from swiftvm import __version__
from swiftvm.cli.utils import print_error
from swiftvm.core.exceptions import EXIT_ABORTED, EXIT_ERROR, SwiftvmError

logger = logging.getLogger(__name__)


SELECTOR_HELP = """\
Toolchain selectors:
  latest                        newest stable release
  5 | 5.10 | 5.10.1             newest release in a major/minor series, or exact
  main-snapshot                 newest snapshot from the main branch
  main-snapshot-2024-01-01      a specific main snapshot
  5.10-snapshot                 newest snapshot from the 5.10 release branch
  5.10-snapshot-2024-01-01      a specific release-branch snapshot
"""


class CLI:
    """swiftvm command-line interface."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="swiftvm",
            description="swiftvm - Swift toolchain version manager",
            epilog=SELECTOR_HELP + '\nUse "swiftvm COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"swiftvm {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--home-dir",
            type=Path,
            metavar="PATH",
            help="swiftvm home directory (env: SWIFTVM_HOME_DIR)",
        )
        parser.add_argument(
            "--bin-dir",
            type=Path,
            metavar="PATH",
            help="Directory for swiftvm's own executables (env: SWIFTVM_BIN_DIR)",
        )
        parser.add_argument(
            "--toolchains-dir",
            type=Path,
            metavar="PATH",
            help="Directory toolchains are installed into (env: SWIFTVM_TOOLCHAINS_DIR)",
        )

        # Subcommands
        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_init_command(subparsers)
        self._add_install_command(subparsers)
        self._add_list_command(subparsers)
        self._add_list_available_command(subparsers)
        self._add_use_command(subparsers)
        self._add_link_command(subparsers)
        self._add_unlink_command(subparsers)
        self._add_run_command(subparsers)
        self._add_uninstall_command(subparsers)
        self._add_update_command(subparsers)
        self._add_repair_command(subparsers)
        self._add_list_dependencies_command(subparsers)

        return parser

    def _add_init_command(self, subparsers):
        """Add 'init' subcommand."""
        parser = subparsers.add_parser(
            "init",
            help="Set up swiftvm for the current user",
            description="Create the swiftvm directories and config, update the "
            "shell profile and install the latest stable toolchain",
        )
        parser.add_argument(
            "--assume-yes",
            "-y",
            action="store_true",
            help="Do not prompt for confirmation",
        )
        parser.add_argument(
            "--skip-install",
            action="store_true",
            help="Do not install the latest toolchain",
        )
        parser.add_argument(
            "--no-modify-profile",
            action="store_true",
            help="Do not add swiftvm to the shell profile",
        )
        parser.add_argument(
            "--overwrite",
            action="store_true",
            help="Replace an existing swiftvm config",
        )
        parser.add_argument(
            "--platform",
            metavar="NAME",
            help="Platform to use instead of detecting it (e.g., ubuntu22.04, amazonlinux2)",
        )
        parser.add_argument(
            "--no-verify",
            action="store_true",
            help="Skip signature verification of the installed toolchain",
        )

    def _add_install_command(self, subparsers):
        """Add 'install' subcommand."""
        parser = subparsers.add_parser(
            "install",
            help="Install a toolchain",
            description="Download, verify and install the toolchain matching SELECTOR",
            epilog=SELECTOR_HELP,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "selector",
            metavar="SELECTOR",
            nargs="?",
            help="Toolchain to install (default: read from .swift-version)",
        )
        parser.add_argument(
            "--use",
            action="store_true",
            help="Make the installed toolchain the active one",
        )
        parser.add_argument(
            "--no-verify",
            action="store_true",
            help="Skip signature verification",
        )
        parser.add_argument(
            "--post-install-file",
            type=Path,
            metavar="PATH",
            help="Write required post-install commands to this file instead of "
            "printing them",
        )

    def _add_list_command(self, subparsers):
        """Add 'list' subcommand."""
        parser = subparsers.add_parser(
            "list",
            help="List installed toolchains",
            description="List installed toolchains, optionally filtered by SELECTOR",
        )
        parser.add_argument("selector", metavar="SELECTOR", nargs="?")
        self._add_format_argument(parser)

    def _add_list_available_command(self, subparsers):
        """Add 'list-available' subcommand."""
        parser = subparsers.add_parser(
            "list-available",
            help="List toolchains available for download",
            description="List toolchains published for this platform. Stable "
            "releases are listed unless a snapshot SELECTOR is given.",
        )
        parser.add_argument("selector", metavar="SELECTOR", nargs="?")
        self._add_format_argument(parser)

    def _add_format_argument(self, parser):
        parser.add_argument(
            "--format",
            choices=["text", "json"],
            default="text",
            help="Output format (default: text)",
        )

    def _add_use_command(self, subparsers):
        """Add 'use' subcommand."""
        parser = subparsers.add_parser(
            "use",
            help="Set or show the toolchain in use",
            description="Select the installed toolchain matching SELECTOR. Inside "
            "a project the nearest .swift-version file is updated, or one is "
            "created at the root of a git checkout; elsewhere the global default "
            "changes. Without SELECTOR, print the toolchain in use.",
        )
        parser.add_argument("selector", metavar="SELECTOR", nargs="?")
        parser.add_argument(
            "--print-location",
            "-p",
            action="store_true",
            help="Print the directory of the toolchain in use",
        )
        parser.add_argument(
            "--global-default",
            "-g",
            action="store_true",
            help="Ignore .swift-version files and use the global default",
        )

    def _add_link_command(self, subparsers):
        """Add 'link' subcommand."""
        parser = subparsers.add_parser(
            "link",
            help="Reactivate a toolchain after unlink",
            description="Put the toolchain matching SELECTOR back on PATH "
            "(default: the one selected by .swift-version or the global default)",
        )
        parser.add_argument("selector", metavar="SELECTOR", nargs="?")

    def _add_run_command(self, subparsers):
        """Add 'run' subcommand."""
        parser = subparsers.add_parser(
            "run",
            help="Run a command with a specific toolchain",
            description="Run COMMAND with the selected toolchain's binaries first "
            "on PATH. A '+SELECTOR' argument picks the toolchain. '++' passes "
            "the remaining arguments through unchanged and '++arg' is passed "
            "as '+arg'.",
            epilog="Examples:\n  swiftvm run swift build\n  swiftvm run swift test +5.10\n",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "run_command",
            metavar="COMMAND",
            nargs=argparse.REMAINDER,
            help="Command and arguments to run",
        )

    def _add_unlink_command(self, subparsers):
        """Add 'unlink' subcommand."""
        subparsers.add_parser(
            "unlink",
            help="Deactivate the active toolchain",
            description="Remove the active toolchain from PATH without uninstalling it",
        )

    def _add_uninstall_command(self, subparsers):
        """Add 'uninstall' subcommand."""
        parser = subparsers.add_parser(
            "uninstall",
            help="Remove installed toolchains",
            description="Remove every installed toolchain matching SELECTOR",
        )
        parser.add_argument("selector", metavar="SELECTOR")
        parser.add_argument(
            "--assume-yes",
            "-y",
            action="store_true",
            help="Do not prompt for confirmation",
        )

    def _add_update_command(self, subparsers):
        """Add 'update' subcommand."""
        parser = subparsers.add_parser(
            "update",
            help="Update a toolchain to the newest of its series",
            description="Replace the installed toolchain matching SELECTOR (the "
            "active one by default) with the newest version in its series",
        )
        parser.add_argument("selector", metavar="SELECTOR", nargs="?")
        parser.add_argument(
            "--assume-yes",
            "-y",
            action="store_true",
            help="Do not prompt for confirmation",
        )
        parser.add_argument(
            "--no-verify",
            action="store_true",
            help="Skip signature verification",
        )
        parser.add_argument(
            "--post-install-file",
            type=Path,
            metavar="PATH",
            help="Write required post-install commands to this file",
        )

    def _add_repair_command(self, subparsers):
        """Add 'repair' subcommand."""
        subparsers.add_parser(
            "repair",
            help="Reconcile installed toolchains with the config",
            description="Clean up interrupted operations and report toolchain "
            "directories that swiftvm does not track",
        )

    def _add_list_dependencies_command(self, subparsers):
        """Add 'list-dependencies' subcommand."""
        parser = subparsers.add_parser(
            "list-dependencies",
            help="Show system packages toolchains need",
            description="Print the system packages required by Swift toolchains "
            "on this platform and which of them are missing",
        )
        parser.add_argument(
            "--missing",
            action="store_true",
            help="Only list packages that are not installed",
        )

    def parse_args(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """
        Parse command-line arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        self._configure_logging(parsed_args)

        if not parsed_args.command:
            self.parser.print_help()
            return EXIT_ERROR

        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return EXIT_ABORTED
        except SwiftvmError as e:
            print_error(str(e), e.hint)
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return e.exit_code
        except Exception as e:
            logger.error(f"Error: {e}")
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return EXIT_ERROR

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(level=level, format=format_str, force=True)

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        command_map = {
            "init": "swiftvm.cli.commands.init",
            "install": "swiftvm.cli.commands.install",
            "list": "swiftvm.cli.commands.list_installed",
            "list-available": "swiftvm.cli.commands.list_available",
            "use": "swiftvm.cli.commands.use",
            "link": "swiftvm.cli.commands.link",
            "unlink": "swiftvm.cli.commands.unlink",
            "run": "swiftvm.cli.commands.run",
            "uninstall": "swiftvm.cli.commands.uninstall",
            "update": "swiftvm.cli.commands.update",
            "repair": "swiftvm.cli.commands.repair",
            "list-dependencies": "swiftvm.cli.commands.list_dependencies",
        }

        module_name = command_map.get(args.command)
        if not module_name:
            logger.error(f"Unknown command: {args.command}")
            return EXIT_ERROR

        module = importlib.import_module(module_name)
        return module.run(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
