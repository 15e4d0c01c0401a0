"""
Linux platform support.

Toolchains for Linux are distributed as ``.tar.gz`` archives with a detached
PGP signature, one build per supported distribution and architecture.
Distribution detection goes through the ``distro`` library.
"""

import getpass
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import distro

from swiftvm.core.exceptions import (
    InvalidVersionError,
    SpawnFailed,
    UnsupportedPlatformError,
)
from swiftvm.core.filesystem import atomic_write, extract_tar
from swiftvm.core.version import ToolchainVersion
from swiftvm.platforms.base import Platform, PlatformDescriptor, detect_architecture

logger = logging.getLogger(__name__)


# (name, name_full, name_pretty)
_SUPPORTED = {
    "ubuntu1804": ("ubuntu18.04", "Ubuntu 18.04"),
    "ubuntu2004": ("ubuntu20.04", "Ubuntu 20.04"),
    "ubuntu2204": ("ubuntu22.04", "Ubuntu 22.04"),
    "ubuntu2404": ("ubuntu24.04", "Ubuntu 24.04"),
    "debian12": ("debian12", "Debian 12"),
    "fedora39": ("fedora39", "Fedora 39"),
    "amazonlinux2": ("amazonlinux2", "Amazon Linux 2"),
    "ubi9": ("ubi9", "RHEL 9"),
}

# Platform names as they appear in the release catalog
CATALOG_PLATFORM_NAMES = {
    "Ubuntu 18.04": "ubuntu1804",
    "Ubuntu 20.04": "ubuntu2004",
    "Ubuntu 22.04": "ubuntu2204",
    "Ubuntu 24.04": "ubuntu2404",
    "Amazon Linux 2": "amazonlinux2",
    "Red Hat Universal Base Image 9": "ubi9",
    "Debian 12": "debian12",
    "Fedora 39": "fedora39",
}

PACKAGE_MANAGERS = {
    "ubuntu1804": "apt-get",
    "ubuntu2004": "apt-get",
    "ubuntu2204": "apt-get",
    "ubuntu2404": "apt-get",
    "debian12": "apt-get",
    "amazonlinux2": "yum",
    "ubi9": "yum",
    "fedora39": "yum",
}

SYSTEM_PACKAGES: Dict[str, List[str]] = {
    "ubuntu1804": [
        "libatomic1", "libcurl4-openssl-dev", "libxml2-dev", "libedit2",
        "libsqlite3-0", "libc6-dev", "binutils", "libgcc-5-dev",
        "libstdc++-5-dev", "zlib1g-dev", "libpython3.6", "tzdata", "git",
        "unzip", "pkg-config",
    ],
    "ubuntu2004": [
        "binutils", "git", "unzip", "gnupg2", "libc6-dev",
        "libcurl4-openssl-dev", "libedit2", "libgcc-9-dev", "libpython3.8",
        "libsqlite3-0", "libstdc++-9-dev", "libxml2-dev", "libz3-dev",
        "pkg-config", "tzdata", "zlib1g-dev",
    ],
    "ubuntu2204": [
        "binutils", "git", "unzip", "gnupg2", "libc6-dev",
        "libcurl4-openssl-dev", "libedit2", "libgcc-11-dev", "libpython3-dev",
        "libsqlite3-0", "libstdc++-11-dev", "libxml2-dev", "libz3-dev",
        "pkg-config", "python3-lldb-13", "tzdata", "zlib1g-dev",
    ],
    "ubuntu2404": [
        "binutils", "git", "unzip", "gnupg2", "libc6-dev",
        "libcurl4-openssl-dev", "libedit2", "libgcc-13-dev", "libpython3-dev",
        "libsqlite3-0", "libstdc++-13-dev", "libxml2-dev", "libncurses-dev",
        "libz3-dev", "pkg-config", "tzdata", "zlib1g-dev",
    ],
    "amazonlinux2": [
        "binutils", "gcc", "git", "unzip", "glibc-static", "gzip", "libbsd",
        "libcurl-devel", "libedit", "libicu", "libsqlite", "libstdc++-static",
        "libuuid", "libxml2-devel", "openssl-devel", "tar", "tzdata",
        "zlib-devel",
    ],
    "ubi9": [
        "git", "gcc-c++", "libcurl-devel", "libedit-devel", "libuuid-devel",
        "libxml2-devel", "ncurses-devel", "python3-devel", "rsync",
        "sqlite-devel", "unzip", "zip",
    ],
    "fedora39": [
        "binutils", "gcc", "git", "unzip", "libcurl-devel", "libedit-devel",
        "libicu-devel", "sqlite-devel", "libuuid-devel", "libxml2-devel",
        "python3-devel", "libstdc++-devel", "libstdc++-static",
    ],
    "debian12": [
        "binutils", "libicu-dev", "libcurl4-openssl-dev", "libedit-dev",
        "libsqlite3-dev", "libncurses-dev", "libpython3-dev", "libxml2-dev",
        "pkg-config", "uuid-dev", "tzdata", "git", "gcc", "libstdc++-12-dev",
    ],
}


def supported_platform_names() -> List[str]:
    """name_full of every supported distribution, for --platform."""
    return [name_full for name_full, _ in _SUPPORTED.values()]


def _detect_distribution_name() -> str:
    """
    Map the running distribution to a supported platform name.

    Raises:
        UnsupportedPlatformError: If the distribution is not supported
    """
    dist_id = distro.id().lower()
    like = distro.like().lower()
    version_id = distro.version(best=False).replace(".", "")
    pretty = distro.name(pretty=True) or dist_id

    if not dist_id or not version_id:
        raise UnsupportedPlatformError(
            "Unable to detect the type of Linux OS and the release",
            hint="Pass --platform to select a platform explicitly",
        )

    family = f"{dist_id} {like}"
    if "amzn" in family:
        if version_id != "2":
            raise UnsupportedPlatformError(f"Unsupported version of Amazon Linux: {pretty}")
        return "amazonlinux2"

    if "rhel" in family:
        if not version_id.startswith("9"):
            raise UnsupportedPlatformError(f"Unsupported version of RHEL: {pretty}")
        return "ubi9"

    candidate = f"{dist_id}{version_id}"
    if candidate in _SUPPORTED and candidate not in ("amazonlinux2", "ubi9"):
        return candidate

    raise UnsupportedPlatformError(
        f"Unsupported Linux platform: {pretty}",
        hint="Supported platforms: " + ", ".join(supported_platform_names()),
    )


class LinuxPlatform(Platform):
    """Linux hosts: tar.gz toolchains verified with detached signatures."""

    os_family = "linux"
    requires_signature = True
    verifies_natively = False

    def detect_current_platform(self, hint: Optional[str] = None) -> PlatformDescriptor:
        if hint is not None:
            for name, (name_full, name_pretty) in _SUPPORTED.items():
                if hint in (name, name_full):
                    break
            else:
                raise UnsupportedPlatformError(
                    f"Unrecognized platform {hint}",
                    hint="Recognized values: " + ", ".join(supported_platform_names()),
                )
        else:
            name = _detect_distribution_name()
            name_full, name_pretty = _SUPPORTED[name]

        descriptor = PlatformDescriptor(
            os_family=self.os_family,
            architecture=detect_architecture(),
            name=name,
            name_full=name_full,
            name_pretty=name_pretty,
        )
        logger.debug(f"Detected platform: {descriptor}")
        return descriptor

    def asset_file_name(
        self, version: ToolchainVersion, descriptor: PlatformDescriptor
    ) -> str:
        suffix = "-aarch64" if descriptor.architecture == "aarch64" else ""
        return f"{version.identifier}-{descriptor.name_full}{suffix}.tar.gz"

    def download_dir(self, descriptor: PlatformDescriptor) -> str:
        suffix = "-aarch64" if descriptor.architecture == "aarch64" else ""
        return f"{descriptor.name}{suffix}"

    def catalog_platform_name(self, descriptor: PlatformDescriptor) -> str:
        return descriptor.name

    def catalog_arch_key(self, descriptor: PlatformDescriptor) -> str:
        return descriptor.architecture

    def match_release_platform(
        self, entries: Sequence[Mapping[str, Any]], descriptor: PlatformDescriptor
    ) -> Optional[Mapping[str, Any]]:
        for entry in entries:
            if CATALOG_PLATFORM_NAMES.get(entry.get("name")) != descriptor.name:
                continue
            if descriptor.architecture in (entry.get("archs") or []):
                return entry
        return None

    def toolchain_dir_name(self, version: ToolchainVersion) -> str:
        return version.name

    def version_from_dir_name(self, name: str) -> Optional[ToolchainVersion]:
        try:
            return ToolchainVersion.parse(name)
        except InvalidVersionError:
            return None

    def default_home_dir(self) -> Path:
        data_home = os.environ.get("XDG_DATA_HOME")
        if data_home:
            return Path(data_home) / "swiftvm"
        return Path.home() / ".local" / "share" / "swiftvm"

    def default_toolchains_dir(self, home_dir: Path) -> Path:
        return home_dir / "toolchains"

    def _unpack(self, archive_path: Path, staging_dir: Path) -> None:
        # Archives contain a single top-level directory named after the asset
        extract_tar(archive_path, staging_dir, strip_components=1)

    def system_dependencies(
        self, descriptor: PlatformDescriptor
    ) -> Tuple[Optional[str], List[str]]:
        return (
            PACKAGE_MANAGERS.get(descriptor.name),
            list(SYSTEM_PACKAGES.get(descriptor.name, [])),
        )

    def is_system_package_installed(self, manager: Optional[str], package: str) -> bool:
        try:
            if manager == "apt-get":
                listing = self.run_program_output("dpkg", ["-l", package])
                # Listed packages may be in a removed or error state; 'ii' is installed
                return listing is not None and "\nii " in listing
            if manager == "yum":
                return self.run_program("yum", ["list", "installed", package], quiet=True) == 0
        except SpawnFailed as e:
            logger.debug(f"Could not query {manager} for {package}: {e}")
            return False
        return True

    def missing_system_packages(self, descriptor: PlatformDescriptor) -> List[str]:
        manager, packages = self.system_dependencies(descriptor)
        if manager is None:
            return []
        return [p for p in packages if not self.is_system_package_installed(manager, p)]

    def post_install_hook(
        self,
        toolchain_dir: Path,
        version: ToolchainVersion,
        descriptor: PlatformDescriptor,
        script_path: Optional[Path] = None,
    ) -> Optional[Path]:
        manager, _ = self.system_dependencies(descriptor)
        missing = self.missing_system_packages(descriptor)
        if not missing:
            return None

        command = f"{manager} -y install {' '.join(missing)}"
        logger.warning(
            f"Toolchain {version.name} needs system packages that are not installed. "
            f"Run this command as root:\n    {command}"
        )
        if script_path is None:
            return None

        atomic_write(Path(script_path), f"#!/bin/sh\n\n{command}\n")
        os.chmod(script_path, 0o755)
        return Path(script_path)

    def get_shell(self) -> str:
        prefix = f"{getpass.getuser()}:"
        try:
            passwd = self.run_program_output("getent", ["passwd"])
        except SpawnFailed:
            passwd = None

        for line in (passwd or "").splitlines():
            if line.startswith(prefix):
                fields = line.split(":")
                if len(fields) > 1 and fields[-1]:
                    return fields[-1]

        return os.environ.get("SHELL") or "/bin/bash"


__all__ = [
    "LinuxPlatform",
    "CATALOG_PLATFORM_NAMES",
    "PACKAGE_MANAGERS",
    "SYSTEM_PACKAGES",
    "supported_platform_names",
]
