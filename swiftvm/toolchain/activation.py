"""
Activation artifact: the on-disk indirection that makes one toolchain active.

The artifact has two parts, both derived purely from the config:
- ``<home>/active``: symlink to the active toolchain directory, absent when
  nothing is active
- ``<home>/env.sh`` and ``<home>/env.fish``: shell snippets exporting the
  swiftvm locations and prepending the bin directory and
  ``<home>/active/usr/bin`` to PATH

Because PATH goes through the stable ``active`` link, switching toolchains
only replaces the link; shells that already sourced the scripts follow it.
"""

import logging
import os
import shlex
from pathlib import Path
from typing import Optional

from swiftvm.core.directory import SwiftvmPaths
from swiftvm.core.filesystem import atomic_write, remove_symlink, replace_symlink
from swiftvm.platforms.base import Platform
from swiftvm.toolchain.config_store import Config

logger = logging.getLogger(__name__)

HEADER = "# Generated by swiftvm. Do not edit; changes are overwritten."


def _fish_quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$") + '"'


class ActivationArtifact:
    """
    Writes the activation link and environment scripts.

    Attributes:
        paths: swiftvm locations
        platform: Host platform (knows where binaries live in a toolchain)
    """

    def __init__(self, paths: SwiftvmPaths, platform: Platform):
        self.paths = paths
        self.platform = platform

    @property
    def active_bin_dir(self) -> Path:
        return self.platform.toolchain_bin_dir(self.paths.active_link)

    def render_sh(self, active_name: Optional[str]) -> str:
        lines = [
            HEADER,
            f"export SWIFTVM_HOME_DIR={shlex.quote(str(self.paths.home_dir))}",
            f"export SWIFTVM_BIN_DIR={shlex.quote(str(self.paths.bin_dir))}",
            f"export SWIFTVM_TOOLCHAIN={shlex.quote(active_name or '')}",
        ]
        # Prepend in reverse so bin_dir ends up first
        for directory in (self.active_bin_dir, self.paths.bin_dir):
            quoted = shlex.quote(str(directory))
            lines += [
                'case ":${PATH}:" in',
                f'    *:{quoted}:*) ;;',
                f'    *) export PATH={quoted}:"${{PATH}}" ;;',
                "esac",
            ]
        return "\n".join(lines) + "\n"

    def render_fish(self, active_name: Optional[str]) -> str:
        lines = [
            HEADER,
            f"set -gx SWIFTVM_HOME_DIR {_fish_quote(str(self.paths.home_dir))}",
            f"set -gx SWIFTVM_BIN_DIR {_fish_quote(str(self.paths.bin_dir))}",
            f"set -gx SWIFTVM_TOOLCHAIN {_fish_quote(active_name or '')}",
        ]
        for directory in (self.active_bin_dir, self.paths.bin_dir):
            quoted = _fish_quote(str(directory))
            lines += [
                f"if not contains {quoted} $PATH",
                f"    set -gx PATH {quoted} $PATH",
                "end",
            ]
        return "\n".join(lines) + "\n"

    def write(self, config: Config) -> Optional[Path]:
        """
        Bring the artifact in line with config.in_use.

        Returns:
            Directory the active link points at, or None if nothing is active

        Raises:
            FilesystemError: If the link cannot be updated
        """
        active = config.get(config.in_use) if config.in_use else None
        active_name = active.version.name if active else None

        atomic_write(self.paths.env_sh, self.render_sh(active_name))
        atomic_write(self.paths.env_fish, self.render_fish(active_name))

        if active is None:
            remove_symlink(self.paths.active_link)
            logger.debug("No active toolchain; removed activation link")
            return None

        replace_symlink(self.paths.active_link, active.path)
        logger.debug(f"Activation link now points at {active.path}")
        return active.path

    def current_target(self) -> Optional[Path]:
        """Directory the active link points at, if any."""
        link = self.paths.active_link
        if not link.is_symlink():
            return None
        return Path(os.readlink(link))


__all__ = ["ActivationArtifact"]
