"""
Unit tests for crash recovery.
"""

import logging
import shutil

from swiftvm.core.version import ToolchainVersion
from swiftvm.toolchain.repair import PendingMarker, load_pending

V5100 = ToolchainVersion.parse("5.10.0")
V590 = ToolchainVersion.parse("5.9.0")


def _extract(test_platform, make_tarball, swiftvm_paths, version):
    target = swiftvm_paths.toolchains_dir / version.name
    test_platform.extract(make_tarball(version), target)
    return target


class TestPendingInstalls:
    """Test pending install markers."""

    def test_adopts_extracted_toolchain(
        self, manager, test_platform, make_tarball, swiftvm_paths
    ):
        """Test a fully extracted install left pending is registered."""
        target = _extract(test_platform, make_tarball, swiftvm_paths, V5100)
        PendingMarker("install", V5100, target).write(swiftvm_paths.pending_dir)

        report = manager.repair()

        assert report.adopted == ["5.10.0"]
        config = manager.load_config()
        assert config.get(V5100).path == target
        assert config.in_use is None
        assert load_pending(swiftvm_paths.pending_dir) == []

    def test_marker_without_directory(self, manager, swiftvm_paths):
        """Test an install that never extracted is forgotten."""
        target = swiftvm_paths.toolchains_dir / "5.10.0"
        PendingMarker("install", V5100, target).write(swiftvm_paths.pending_dir)

        report = manager.repair()

        assert report.adopted == []
        assert not manager.load_config().is_installed(V5100)
        assert load_pending(swiftvm_paths.pending_dir) == []

    def test_unreadable_marker_flagged_and_removed(self, manager, swiftvm_paths, caplog):
        """Test a garbled marker is flagged once and then cleared."""
        junk = swiftvm_paths.pending_dir / "junk.json"
        junk.write_text("{")

        with caplog.at_level(logging.WARNING):
            report = manager.repair()

        assert not report.changed
        assert report.unreadable_markers == [junk]
        assert report.has_flagged
        assert "Unreadable pending marker" in caplog.text
        assert not junk.exists()

        again = manager.repair()
        assert again.unreadable_markers == []
        assert not again.has_flagged

    def test_unreadable_marker_directory_flagged_as_orphan(
        self, manager, test_platform, make_tarball, swiftvm_paths
    ):
        """Test the directory behind a garbled install marker is reported."""
        target = _extract(test_platform, make_tarball, swiftvm_paths, V5100)
        (swiftvm_paths.pending_dir / "5.10.0.json").write_text('{"operation": 1}')

        report = manager.repair()

        assert report.orphaned_paths == [target]
        assert len(report.unreadable_markers) == 1
        assert target.is_dir()
        assert not manager.load_config().is_installed(V5100)


class TestPendingUninstalls:
    """Test pending uninstall markers."""

    def test_completes_uninstall(self, manager, fake_downloads, swiftvm_paths):
        """Test an uninstall whose directory is gone is finished."""
        result = manager.install_version(V5100)
        PendingMarker("uninstall", V5100, result.path).write(swiftvm_paths.pending_dir)
        result.path.rename(swiftvm_paths.toolchains_dir / ".5.10.0.removing-abc")

        report = manager.repair()

        assert report.completed_uninstalls == ["5.10.0"]
        config = manager.load_config()
        assert not config.is_installed(V5100)
        assert config.in_use is None
        assert not swiftvm_paths.active_link.is_symlink()
        assert list(swiftvm_paths.toolchains_dir.iterdir()) == []


class TestStoreScan:
    """Test detection of orphans, missing directories and stale files."""

    def test_orphan_reported_not_deleted(
        self, manager, test_platform, make_tarball, swiftvm_paths
    ):
        """Test untracked toolchain directories are flagged and kept."""
        orphan = _extract(test_platform, make_tarball, swiftvm_paths, V590)
        (swiftvm_paths.toolchains_dir / "notes").mkdir()

        report = manager.repair()

        assert report.orphaned_paths == [orphan]
        assert report.has_flagged
        assert orphan.is_dir()
        assert not manager.load_config().is_installed(V590)

    def test_missing_directory_reported(self, manager, fake_downloads, swiftvm_paths):
        """Test entries without a directory are flagged, not dropped."""
        result = manager.install_version(V5100)
        shutil.rmtree(result.path)

        report = manager.repair()

        assert report.missing_paths == [result.path]
        assert manager.load_config().is_installed(V5100)

    def test_stale_staging_removed(self, manager, swiftvm_paths):
        """Test leftovers of interrupted operations are cleaned up."""
        staging = swiftvm_paths.toolchains_dir / ".5.10.0.staging-0123456789ab"
        (staging / "usr").mkdir(parents=True)
        stale_link = swiftvm_paths.home_dir / ".active.link-0123456789ab"
        stale_link.write_text("")
        leftover = swiftvm_paths.downloads_dir / "swift-5.10-RELEASE-ubuntu22.04.tar.gz"
        leftover.write_bytes(b"x")
        partial = swiftvm_paths.downloads_dir / "swift-5.10.1-RELEASE-ubuntu22.04.tar.gz.part"
        partial.write_bytes(b"x")

        report = manager.repair()

        assert not staging.exists()
        assert not stale_link.exists()
        assert not leftover.exists()
        assert partial.exists()
        assert set(report.removed_staging) == {staging, stale_link, leftover}
        assert not report.has_flagged

    def test_clean_store(self, manager):
        """Test repair on a healthy store changes nothing."""
        report = manager.repair()
        assert not report.changed
        assert not report.has_flagged
