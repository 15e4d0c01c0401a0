"""
Platform capability interface.

Everything that differs between host OS families lives behind the Platform
class: detecting the host, naming downloadable assets, unpacking them,
running external programs, and post-install checks. The engine is written
against this interface only and never branches on the OS itself.

Concrete implementations:
- swiftvm.platforms.linux.LinuxPlatform  (tar.gz archives)
- swiftvm.platforms.macos.MacOSPlatform  (.pkg installers)
"""

import logging
import os
import platform as host
import subprocess
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from swiftvm.core.exceptions import (
    CorruptConfigError,
    ExtractionFailed,
    SpawnFailed,
    SwiftvmError,
    UnsupportedPlatformError,
)
from swiftvm.core.filesystem import is_empty_directory, safe_rmtree, sibling_temp_path
from swiftvm.core.version import ToolchainVersion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformDescriptor:
    """
    Identifies the host for asset selection.

    Attributes:
        os_family: 'linux' or 'macos'
        architecture: 'x86_64' or 'aarch64'
        name: Short platform name ('ubuntu2204', 'ubi9', 'xcode')
        name_full: Name used in asset file names ('ubuntu22.04', 'osx')
        name_pretty: Human readable name ('Ubuntu 22.04')
    """

    os_family: str
    architecture: str
    name: str
    name_full: str
    name_pretty: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PlatformDescriptor":
        try:
            return cls(
                os_family=str(data["os_family"]),
                architecture=str(data["architecture"]),
                name=str(data["name"]),
                name_full=str(data["name_full"]),
                name_pretty=str(data["name_pretty"]),
            )
        except (KeyError, TypeError) as e:
            raise CorruptConfigError(f"Invalid platform record: {e}") from e

    def __str__(self) -> str:
        return f"{self.name_pretty} ({self.architecture})"


def detect_architecture() -> str:
    """
    Detect CPU architecture using swift.org naming.

    Raises:
        UnsupportedPlatformError: For architectures without toolchains
    """
    machine = host.machine().lower()

    if machine in ("x86_64", "amd64", "x64"):
        return "x86_64"
    elif machine in ("aarch64", "arm64"):
        return "aarch64"

    raise UnsupportedPlatformError(
        f"Unsupported processor architecture: {machine}",
        hint="Toolchains are published for x86_64 and aarch64 only",
    )


class Platform(ABC):
    """Capabilities of one host OS family."""

    #: 'linux' or 'macos'
    os_family: str = ""
    #: True when catalog assets carry a detached signature to verify
    requires_signature: bool = False
    #: True when the archive format carries its own signature checked on extract
    verifies_natively: bool = False

    # ------------------------------------------------------------------
    # Detection and naming
    # ------------------------------------------------------------------

    @abstractmethod
    def detect_current_platform(self, hint: Optional[str] = None) -> PlatformDescriptor:
        """
        Inspect the running host.

        Args:
            hint: Optional platform name_full to use instead of detecting

        Raises:
            UnsupportedPlatformError: If the host is not recognized
        """

    @abstractmethod
    def asset_file_name(
        self, version: ToolchainVersion, descriptor: PlatformDescriptor
    ) -> str:
        """File name of the downloadable toolchain for version."""

    @abstractmethod
    def download_dir(self, descriptor: PlatformDescriptor) -> str:
        """Platform path segment in the download server layout."""

    @abstractmethod
    def catalog_platform_name(self, descriptor: PlatformDescriptor) -> str:
        """Platform name used by the snapshot catalog endpoint."""

    @abstractmethod
    def catalog_arch_key(self, descriptor: PlatformDescriptor) -> str:
        """Architecture key in snapshot catalog responses."""

    @abstractmethod
    def match_release_platform(
        self, entries: Sequence[Mapping[str, Any]], descriptor: PlatformDescriptor
    ) -> Optional[Mapping[str, Any]]:
        """
        Pick the release catalog platform entry offering this host.

        Returns:
            The matching entry (possibly empty when the release is offered
            without per-platform entries), or None if not offered
        """

    @abstractmethod
    def toolchain_dir_name(self, version: ToolchainVersion) -> str:
        """Name of the store directory holding version."""

    @abstractmethod
    def version_from_dir_name(self, name: str) -> Optional[ToolchainVersion]:
        """Inverse of toolchain_dir_name; None for unrelated entries."""

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    @abstractmethod
    def default_home_dir(self) -> Path:
        """Default swiftvm home directory."""

    def default_bin_dir(self, home_dir: Path) -> Path:
        return home_dir / "bin"

    @abstractmethod
    def default_toolchains_dir(self, home_dir: Path) -> Path:
        """Default toolchain store."""

    def toolchain_bin_dir(self, toolchain_dir: Path) -> Path:
        return toolchain_dir / "usr" / "bin"

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    @abstractmethod
    def _unpack(self, archive_path: Path, staging_dir: Path) -> None:
        """Unpack archive_path into the empty directory staging_dir."""

    def extract(self, archive_path: Path, destination: Path) -> None:
        """
        Unpack a toolchain archive into destination atomically.

        The archive is unpacked into a hidden sibling staging directory that
        is renamed into place only on success. A pre-existing empty
        destination is replaced.

        Raises:
            ExtractionFailed: If unpacking fails or destination is not empty
        """
        destination = Path(destination)
        if destination.exists() and not is_empty_directory(destination):
            raise ExtractionFailed(
                f"Destination {destination} already exists and is not empty"
            )

        destination.parent.mkdir(parents=True, exist_ok=True)
        staging = sibling_temp_path(destination, "staging")
        staging.mkdir()

        try:
            logger.info(f"Extracting {archive_path.name}...")
            self._unpack(archive_path, staging)

            if destination.exists():
                destination.rmdir()
            os.rename(staging, destination)
        except BaseException as e:
            safe_rmtree(staging, require_prefix=destination.parent)
            if isinstance(e, SwiftvmError):
                raise
            if isinstance(e, OSError):
                raise ExtractionFailed(
                    f"Failed to install {archive_path.name} into {destination}: {e}"
                ) from e
            raise

        logger.info(f"Extracted toolchain to {destination}")

    @abstractmethod
    def post_install_hook(
        self,
        toolchain_dir: Path,
        version: ToolchainVersion,
        descriptor: PlatformDescriptor,
        script_path: Optional[Path] = None,
    ) -> Optional[Path]:
        """
        Check the host after an install.

        Returns:
            Path of a script (written to script_path) that must be run with
            elevated privileges, or None if nothing further is required
        """

    def system_dependencies(self, descriptor: PlatformDescriptor):
        """(package manager, packages) the toolchain needs on this host."""
        return None, []

    def missing_system_packages(self, descriptor: PlatformDescriptor) -> List[str]:
        """Packages from system_dependencies() that are not installed."""
        return []

    # ------------------------------------------------------------------
    # Processes
    # ------------------------------------------------------------------

    def run_program(
        self,
        executable: str,
        args: Sequence[str] = (),
        env: Optional[Mapping[str, str]] = None,
        quiet: bool = False,
    ) -> int:
        """
        Run an external program synchronously.

        Args:
            executable: Program name or path
            args: Arguments
            env: Variables overriding the inherited environment
            quiet: Discard the program's output

        Returns:
            Exit status

        Raises:
            SpawnFailed: If the program cannot be started
        """
        merged_env = None
        if env is not None:
            merged_env = {**os.environ, **env}

        cmd: List[str] = [executable, *args]
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                env=merged_env,
                stdout=subprocess.DEVNULL if quiet else None,
                stderr=subprocess.DEVNULL if quiet else None,
            )
        except OSError as e:
            raise SpawnFailed(executable, str(e)) from e

        return result.returncode

    def run_program_output(
        self,
        executable: str,
        args: Sequence[str] = (),
        env: Optional[Mapping[str, str]] = None,
    ) -> Optional[str]:
        """
        Run a program and capture its standard output.

        Returns:
            Output text, or None if the program exited non-zero

        Raises:
            SpawnFailed: If the program cannot be started
        """
        merged_env = None
        if env is not None:
            merged_env = {**os.environ, **env}

        try:
            result = subprocess.run(
                [executable, *args],
                env=merged_env,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise SpawnFailed(executable, str(e)) from e

        if result.returncode != 0:
            return None
        return result.stdout

    @abstractmethod
    def get_shell(self) -> str:
        """The user's login shell."""


__all__ = ["Platform", "PlatformDescriptor", "detect_architecture"]
