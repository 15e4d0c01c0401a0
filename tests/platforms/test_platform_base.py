"""
Unit tests for the shared Platform behaviour.
"""

from unittest.mock import patch

import pytest

from swiftvm.core.exceptions import ExtractionFailed, UnsupportedPlatformError
from swiftvm.core.version import ToolchainVersion
from swiftvm.platforms import (
    LinuxPlatform,
    MacOSPlatform,
    clear_platform_cache,
    get_current_platform,
)
from swiftvm.platforms.base import PlatformDescriptor, detect_architecture


@pytest.fixture(autouse=True)
def fresh_platform_cache():
    clear_platform_cache()
    yield
    clear_platform_cache()


class TestPlatformSelection:
    """Test get_current_platform and detect_architecture."""

    @pytest.mark.parametrize(
        "system,expected", [("Linux", LinuxPlatform), ("Darwin", MacOSPlatform)]
    )
    def test_supported_systems(self, system, expected):
        """Test Linux and macOS hosts get their implementation."""
        with patch("swiftvm.platforms.host.system", return_value=system):
            assert isinstance(get_current_platform(), expected)

    def test_windows_rejected(self):
        """Test other operating systems are unsupported."""
        with patch("swiftvm.platforms.host.system", return_value="Windows"):
            with pytest.raises(UnsupportedPlatformError):
                get_current_platform()

    @pytest.mark.parametrize(
        "machine,expected",
        [("x86_64", "x86_64"), ("AMD64", "x86_64"), ("arm64", "aarch64"), ("aarch64", "aarch64")],
    )
    def test_detect_architecture(self, machine, expected):
        """Test machine names are normalized."""
        with patch("swiftvm.platforms.base.host.machine", return_value=machine):
            assert detect_architecture() == expected

    def test_descriptor_round_trip(self, linux_descriptor):
        """Test descriptors persist as dicts."""
        assert PlatformDescriptor.from_dict(linux_descriptor.to_dict()) == linux_descriptor


class TestExtract:
    """Test staged extraction."""

    def test_extract_into_place(self, tmp_path, make_tarball):
        """Test an archive lands at the destination with no staging left."""
        archive = make_tarball(ToolchainVersion.parse("5.10.0"))
        destination = tmp_path / "store" / "5.10.0"

        LinuxPlatform().extract(archive, destination)

        assert (destination / "usr" / "bin" / "swift").exists()
        assert [p.name for p in destination.parent.iterdir()] == ["5.10.0"]

    def test_replaces_empty_destination(self, tmp_path, make_tarball):
        """Test an empty destination directory is accepted."""
        archive = make_tarball(ToolchainVersion.parse("5.10.0"))
        destination = tmp_path / "store" / "5.10.0"
        destination.mkdir(parents=True)

        LinuxPlatform().extract(archive, destination)
        assert (destination / "usr" / "bin" / "swift").exists()

    def test_refuses_non_empty_destination(self, tmp_path, make_tarball):
        """Test existing toolchains are never overwritten."""
        archive = make_tarball(ToolchainVersion.parse("5.10.0"))
        destination = tmp_path / "store" / "5.10.0"
        destination.mkdir(parents=True)
        (destination / "keep").write_text("x")

        with pytest.raises(ExtractionFailed, match="not empty"):
            LinuxPlatform().extract(archive, destination)
        assert (destination / "keep").exists()

    def test_failure_removes_staging(self, tmp_path):
        """Test a corrupt archive leaves neither destination nor staging."""
        archive = tmp_path / "bad.tar.gz"
        archive.write_bytes(b"garbage")
        store = tmp_path / "store"
        destination = store / "5.10.0"

        with pytest.raises(ExtractionFailed):
            LinuxPlatform().extract(archive, destination)

        assert list(store.iterdir()) == []

    def test_interrupt_removes_staging(self, tmp_path, make_tarball):
        """Test KeyboardInterrupt during unpack cleans up and propagates."""
        archive = make_tarball(ToolchainVersion.parse("5.10.0"))
        store = tmp_path / "store"
        platform = LinuxPlatform()

        with patch.object(platform, "_unpack", side_effect=KeyboardInterrupt):
            with pytest.raises(KeyboardInterrupt):
                platform.extract(archive, store / "5.10.0")

        assert list(store.iterdir()) == []
