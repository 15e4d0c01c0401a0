"""
macOS platform support.

Toolchains for macOS ship as signed ``.pkg`` installers. The package signature
is checked with ``pkgutil --check-signature`` before the payload is expanded,
so no detached signature is downloaded.
"""

import getpass
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from swiftvm.core.exceptions import (
    ExtractionFailed,
    InvalidVersionError,
    SignatureInvalid,
    SpawnFailed,
)
from swiftvm.core.version import ToolchainVersion
from swiftvm.platforms.base import Platform, PlatformDescriptor, detect_architecture

logger = logging.getLogger(__name__)

TOOLCHAIN_SUFFIX = ".xctoolchain"


class MacOSPlatform(Platform):
    """macOS hosts: signed .pkg toolchains installed as .xctoolchain bundles."""

    os_family = "macos"
    requires_signature = False
    verifies_natively = True

    def detect_current_platform(self, hint: Optional[str] = None) -> PlatformDescriptor:
        # Packages are universal binaries; the hint is irrelevant here
        return PlatformDescriptor(
            os_family=self.os_family,
            architecture=detect_architecture(),
            name="xcode",
            name_full="osx",
            name_pretty="macOS",
        )

    def asset_file_name(
        self, version: ToolchainVersion, descriptor: PlatformDescriptor
    ) -> str:
        return f"{version.identifier}-osx.pkg"

    def download_dir(self, descriptor: PlatformDescriptor) -> str:
        return "xcode"

    def catalog_platform_name(self, descriptor: PlatformDescriptor) -> str:
        return "macos"

    def catalog_arch_key(self, descriptor: PlatformDescriptor) -> str:
        return "universal"

    def match_release_platform(
        self, entries: Sequence[Mapping[str, Any]], descriptor: PlatformDescriptor
    ) -> Optional[Mapping[str, Any]]:
        # Every release has a macOS package; the catalog does not list it
        for entry in entries:
            if str(entry.get("name", "")).lower() in ("macos", "xcode"):
                return entry
        return {}

    def toolchain_dir_name(self, version: ToolchainVersion) -> str:
        return f"{version.identifier}{TOOLCHAIN_SUFFIX}"

    def version_from_dir_name(self, name: str) -> Optional[ToolchainVersion]:
        if not name.endswith(TOOLCHAIN_SUFFIX):
            return None
        try:
            return ToolchainVersion.from_identifier(name[: -len(TOOLCHAIN_SUFFIX)])
        except InvalidVersionError:
            return None

    def default_home_dir(self) -> Path:
        return Path.home() / ".swiftvm"

    def default_toolchains_dir(self, home_dir: Path) -> Path:
        return Path.home() / "Library" / "Developer" / "Toolchains"

    def _find_payload(self, expanded_dir: Path) -> Path:
        payload = expanded_dir / "Payload"
        if payload.exists():
            return payload

        # Official packages nest the payload in a component package
        for candidate in sorted(expanded_dir.glob("*.pkg/Payload")):
            return candidate

        raise ExtractionFailed(f"Payload file could not be found in {expanded_dir}")

    def _unpack(self, archive_path: Path, staging_dir: Path) -> None:
        status = self.run_program(
            "pkgutil", ["--check-signature", str(archive_path)], quiet=True
        )
        if status != 0:
            raise SignatureInvalid(
                f"Package signature check failed for {archive_path.name}",
                hint="The download may be corrupted or tampered with; "
                "it has been deleted",
            )

        with tempfile.TemporaryDirectory(prefix="swiftvm_pkg_") as tmp:
            # pkgutil refuses to expand into an existing directory
            expanded = Path(tmp) / "expanded"
            status = self.run_program(
                "pkgutil", ["--expand", str(archive_path), str(expanded)], quiet=True
            )
            if status != 0:
                raise ExtractionFailed(f"pkgutil failed to expand {archive_path.name}")

            payload = self._find_payload(expanded)
            logger.info("Untarring pkg Payload...")
            status = self.run_program(
                "tar", ["-C", str(staging_dir), "-xf", str(payload)], quiet=True
            )
            if status != 0:
                raise ExtractionFailed(f"Failed to unpack payload of {archive_path.name}")

    def post_install_hook(
        self,
        toolchain_dir: Path,
        version: ToolchainVersion,
        descriptor: PlatformDescriptor,
        script_path: Optional[Path] = None,
    ) -> Optional[Path]:
        try:
            sdk_path = self.run_program_output(
                "xcrun", ["--show-sdk-path", "--sdk", "macosx"]
            )
        except SpawnFailed:
            sdk_path = None

        if not sdk_path or not sdk_path.strip():
            logger.warning(
                "Could not read output of 'xcrun --show-sdk-path --sdk macosx'. "
                "Ensure your macOS SDK is installed properly for the swift "
                "toolchain to work."
            )
        return None

    def get_shell(self) -> str:
        try:
            output = self.run_program_output(
                "dscl", [".", "-read", f"/Users/{getpass.getuser()}", "UserShell"]
            )
        except SpawnFailed:
            output = None

        for line in (output or "").splitlines():
            if line.startswith("UserShell:"):
                shell = line.split(":", 1)[1].strip()
                if shell:
                    return shell

        return os.environ.get("SHELL") or "/bin/zsh"


__all__ = ["MacOSPlatform", "TOOLCHAIN_SUFFIX"]
