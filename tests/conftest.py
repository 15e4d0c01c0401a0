"""
Pytest configuration and shared fixtures for swiftvm tests.
"""

import io
import shutil
import subprocess
import tarfile
from pathlib import Path
from typing import Dict, List
from unittest.mock import patch

import pytest

from swiftvm.catalog.client import CatalogEntry, ReleaseAsset
from swiftvm.core.directory import SwiftvmPaths
from swiftvm.core.locking import LockManager
from swiftvm.core.settings import Settings
from swiftvm.core.verification import SignatureVerifier
from swiftvm.core.version import ToolchainVersion
from swiftvm.platforms.base import PlatformDescriptor
from swiftvm.platforms.linux import LinuxPlatform
from swiftvm.toolchain.config_store import ConfigStore
from swiftvm.toolchain.engine import InitOptions, ManagerContext, ToolchainManager


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests that require network access",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --integration flag is provided."""
    if not config.getoption("--integration"):
        skip_integration = pytest.mark.skip(reason="need --integration option to run")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (requires --integration)",
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


# ============================================================================
# Platform
# ============================================================================


UBUNTU_2204 = PlatformDescriptor(
    os_family="linux",
    architecture="x86_64",
    name="ubuntu2204",
    name_full="ubuntu22.04",
    name_pretty="Ubuntu 22.04",
)


class FixedLinuxPlatform(LinuxPlatform):
    """LinuxPlatform pinned to Ubuntu 22.04 x86_64 with no host probing."""

    def __init__(self, home_dir: Path):
        self.home_dir = home_dir

    def detect_current_platform(self, hint=None):
        return UBUNTU_2204

    def default_home_dir(self) -> Path:
        return self.home_dir

    def missing_system_packages(self, descriptor):
        return []

    def get_shell(self) -> str:
        return "/bin/bash"


@pytest.fixture
def linux_descriptor() -> PlatformDescriptor:
    return UBUNTU_2204


@pytest.fixture
def swiftvm_home(tmp_path) -> Path:
    """Isolated swiftvm home directory."""
    home = tmp_path / "swiftvm-home"
    home.mkdir()
    return home


@pytest.fixture
def test_platform(swiftvm_home) -> FixedLinuxPlatform:
    return FixedLinuxPlatform(swiftvm_home)


@pytest.fixture
def swiftvm_paths(swiftvm_home) -> SwiftvmPaths:
    return SwiftvmPaths(
        home_dir=swiftvm_home,
        bin_dir=swiftvm_home / "bin",
        toolchains_dir=swiftvm_home / "toolchains",
    )


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with no backoff and short lock waits."""
    return Settings(
        api_url="https://api.test",
        download_url="https://download.test",
        timeout=5,
        max_retries=3,
        backoff_base=0.0,
        lock_timeout=0.1,
        lock_retries=1,
        disk_space_multiplier=1.0,
        keys_url="https://keys.test/all-keys.asc",
    )


@pytest.fixture
def stub_gpg():
    """Patch gpg invocations; set .returncode/.stderr on the result to fail."""
    result = subprocess.CompletedProcess(args=["gpg"], returncode=0, stdout="", stderr="")
    with patch(
        "swiftvm.core.verification.subprocess.run", return_value=result
    ) as mock_run:
        mock_run.result = result
        yield mock_run


# ============================================================================
# Toolchain Archives
# ============================================================================


def _add_file(tar: tarfile.TarFile, name: str, data: bytes, mode: int = 0o644):
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = mode
    tar.addfile(info, io.BytesIO(data))


def _add_dir(tar: tarfile.TarFile, name: str):
    info = tarfile.TarInfo(name)
    info.type = tarfile.DIRTYPE
    info.mode = 0o755
    tar.addfile(info)


@pytest.fixture
def make_tarball(tmp_path):
    """Factory building a Linux toolchain .tar.gz for a version."""
    archive_dir = tmp_path / "archives"
    archive_dir.mkdir()

    def build(version: ToolchainVersion) -> Path:
        top = f"{version.identifier}-{UBUNTU_2204.name_full}"
        archive = archive_dir / f"{top}.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            _add_dir(tar, top)
            _add_dir(tar, f"{top}/usr")
            _add_dir(tar, f"{top}/usr/bin")
            _add_file(
                tar,
                f"{top}/usr/bin/swift",
                f"#!/bin/sh\necho {version.name}\n".encode(),
                mode=0o755,
            )
        return archive

    return build


# ============================================================================
# Catalog and Engine
# ============================================================================


class FakeCatalog:
    """In-memory stand-in for CatalogClient."""

    def __init__(self, versions: List[str]):
        self.versions = [ToolchainVersion.parse(v) for v in versions]
        self.requests: List[str] = []

    def asset_for(self, version, descriptor, sha256=None, size=None) -> ReleaseAsset:
        file_name = f"{version.identifier}-{descriptor.name_full}.tar.gz"
        return ReleaseAsset(
            version=version,
            url=f"https://download.test/{file_name}",
            file_name=file_name,
            sha256=sha256,
            size=size,
        )

    def _entries(self, predicate) -> List[CatalogEntry]:
        return [
            CatalogEntry(v, self.asset_for(v, UBUNTU_2204))
            for v in sorted(self.versions, key=lambda v: v.sort_key(), reverse=True)
            if predicate(v)
        ]

    def list_releases(self, descriptor):
        self.requests.append("releases")
        return self._entries(lambda v: v.is_stable())

    def list_snapshots(self, descriptor, branch):
        self.requests.append(f"snapshots:{branch.name}")
        return self._entries(lambda v: v.is_snapshot() and v.branch == branch)


@pytest.fixture
def fake_catalog() -> FakeCatalog:
    return FakeCatalog(
        [
            "5.9.0",
            "5.9.2",
            "5.10.0",
            "5.10.1",
            "main-snapshot-2024-05-01",
            "main-snapshot-2024-06-01",
            "6.0-snapshot-2024-06-10",
        ]
    )


@pytest.fixture
def fake_downloads(make_tarball):
    """
    Replace the download pipeline with a copy of a locally built tarball.

    The returned dict counts fetches per version name.
    """
    fetched: Dict[str, int] = {}

    def fetch(asset, staging_path, **kwargs):
        fetched[asset.version.name] = fetched.get(asset.version.name, 0) + 1
        if kwargs.get("on_verify") is not None:
            kwargs["on_verify"]()
        staging_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(make_tarball(asset.version), staging_path)
        return staging_path

    with patch("swiftvm.toolchain.engine.fetch_and_verify", side_effect=fetch):
        yield fetched


@pytest.fixture
def manager_context(test_platform, swiftvm_paths, fast_settings, fake_catalog):
    lock_manager = LockManager(swiftvm_paths.lock_dir, timeout=0.1, retries=1)
    return ManagerContext(
        platform=test_platform,
        paths=swiftvm_paths,
        settings=fast_settings,
        catalog=fake_catalog,
        store=ConfigStore(swiftvm_paths.config_file, lock_manager),
        verifier=SignatureVerifier(swiftvm_paths.gnupg_dir),
    )


@pytest.fixture
def manager(manager_context) -> ToolchainManager:
    """Initialized ToolchainManager with nothing installed."""
    toolchain_manager = ToolchainManager(manager_context)
    toolchain_manager.init(InitOptions(skip_install=True, no_modify_profile=True))
    return toolchain_manager
