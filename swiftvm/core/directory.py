"""
Directory layout for swiftvm.

Resolves the three user-configurable locations (home, bin, toolchains) and
derives every other path the engine touches from them.

Directory Structure:
    Home (~/.local/share/swiftvm on Linux, ~/.swiftvm on macOS):
        - config.json     : Installed toolchains and the active selection
        - settings.yaml   : Optional user settings
        - env.sh/env.fish : Generated activation scripts
        - active          : Symlink to the active toolchain directory
        - bin/            : Default binaries directory
        - toolchains/     : Default toolchain store (Linux)
        - downloads/      : In-flight and verified archives
        - pending/        : Markers for in-flight install/uninstall operations
        - locks/          : Advisory lock files
        - gnupg/          : Private keyring for signature checks

Precedence for each location: explicit argument, then environment variable,
then the platform default.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Optional

if TYPE_CHECKING:
    from swiftvm.platforms.base import Platform

HOME_DIR_ENV = "SWIFTVM_HOME_DIR"
BIN_DIR_ENV = "SWIFTVM_BIN_DIR"
TOOLCHAINS_DIR_ENV = "SWIFTVM_TOOLCHAINS_DIR"


@dataclass(frozen=True)
class SwiftvmPaths:
    """Resolved on-disk locations for one user installation."""

    home_dir: Path
    bin_dir: Path
    toolchains_dir: Path

    @property
    def config_file(self) -> Path:
        return self.home_dir / "config.json"

    @property
    def settings_file(self) -> Path:
        return self.home_dir / "settings.yaml"

    @property
    def lock_dir(self) -> Path:
        return self.home_dir / "locks"

    @property
    def pending_dir(self) -> Path:
        return self.home_dir / "pending"

    @property
    def downloads_dir(self) -> Path:
        return self.home_dir / "downloads"

    @property
    def env_sh(self) -> Path:
        return self.home_dir / "env.sh"

    @property
    def env_fish(self) -> Path:
        return self.home_dir / "env.fish"

    @property
    def gnupg_dir(self) -> Path:
        return self.home_dir / "gnupg"

    @property
    def active_link(self) -> Path:
        return self.home_dir / "active"

    def ensure(self) -> None:
        """Create the directories that must exist before any operation."""
        for path in (
            self.home_dir,
            self.bin_dir,
            self.toolchains_dir,
            self.lock_dir,
            self.pending_dir,
            self.downloads_dir,
        ):
            path.mkdir(parents=True, exist_ok=True)


def _from_env(environ: Mapping[str, str], name: str) -> Optional[Path]:
    value = environ.get(name)
    if value:
        return Path(value).expanduser()
    return None


def resolve_paths(
    platform: "Platform",
    home_dir: Optional[Path] = None,
    bin_dir: Optional[Path] = None,
    toolchains_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SwiftvmPaths:
    """
    Resolve swiftvm locations.

    Args:
        platform: Host platform providing the defaults
        home_dir: Explicit home directory (highest precedence)
        bin_dir: Explicit binaries directory
        toolchains_dir: Explicit toolchain store
        environ: Environment mapping (default: os.environ)

    Returns:
        SwiftvmPaths with absolute paths

    Example:
        >>> paths = resolve_paths(get_current_platform())
        >>> paths.config_file
        PosixPath('/home/user/.local/share/swiftvm/config.json')
    """
    if environ is None:
        environ = os.environ

    home = home_dir or _from_env(environ, HOME_DIR_ENV) or platform.default_home_dir()
    home = Path(home).expanduser().absolute()

    bins = bin_dir or _from_env(environ, BIN_DIR_ENV) or platform.default_bin_dir(home)
    toolchains = (
        toolchains_dir
        or _from_env(environ, TOOLCHAINS_DIR_ENV)
        or platform.default_toolchains_dir(home)
    )

    return SwiftvmPaths(
        home_dir=home,
        bin_dir=Path(bins).expanduser().absolute(),
        toolchains_dir=Path(toolchains).expanduser().absolute(),
    )


__all__ = [
    "SwiftvmPaths",
    "resolve_paths",
    "HOME_DIR_ENV",
    "BIN_DIR_ENV",
    "TOOLCHAINS_DIR_ENV",
]
