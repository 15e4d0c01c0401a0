"""
Unit tests for directory resolution.
"""

from pathlib import Path

from swiftvm.core.directory import (
    BIN_DIR_ENV,
    HOME_DIR_ENV,
    TOOLCHAINS_DIR_ENV,
    resolve_paths,
)


class TestResolvePaths:
    """Test precedence of explicit arguments, environment and defaults."""

    def test_platform_defaults(self, test_platform, swiftvm_home):
        """Test defaults come from the platform."""
        paths = resolve_paths(test_platform, environ={})
        assert paths.home_dir == swiftvm_home
        assert paths.bin_dir == swiftvm_home / "bin"
        assert paths.toolchains_dir == swiftvm_home / "toolchains"

    def test_environment_overrides_defaults(self, test_platform, tmp_path):
        """Test SWIFTVM_* variables override the defaults."""
        environ = {
            HOME_DIR_ENV: str(tmp_path / "h"),
            BIN_DIR_ENV: str(tmp_path / "b"),
            TOOLCHAINS_DIR_ENV: str(tmp_path / "t"),
        }
        paths = resolve_paths(test_platform, environ=environ)
        assert paths.home_dir == tmp_path / "h"
        assert paths.bin_dir == tmp_path / "b"
        assert paths.toolchains_dir == tmp_path / "t"

    def test_arguments_override_environment(self, test_platform, tmp_path):
        """Test explicit arguments win over the environment."""
        environ = {HOME_DIR_ENV: str(tmp_path / "env-home")}
        paths = resolve_paths(test_platform, home_dir=tmp_path / "arg-home", environ=environ)
        assert paths.home_dir == tmp_path / "arg-home"
        assert paths.bin_dir == tmp_path / "arg-home" / "bin"

    def test_relative_paths_made_absolute(self, test_platform, tmp_path, monkeypatch):
        """Test relative locations are anchored at the working directory."""
        monkeypatch.chdir(tmp_path)
        paths = resolve_paths(test_platform, home_dir=Path("rel"), environ={})
        assert paths.home_dir == tmp_path / "rel"

    def test_derived_paths(self, swiftvm_paths, swiftvm_home):
        """Test every derived location lives under home."""
        assert swiftvm_paths.config_file == swiftvm_home / "config.json"
        assert swiftvm_paths.settings_file == swiftvm_home / "settings.yaml"
        assert swiftvm_paths.active_link == swiftvm_home / "active"
        assert swiftvm_paths.pending_dir == swiftvm_home / "pending"
        assert swiftvm_paths.gnupg_dir == swiftvm_home / "gnupg"

    def test_ensure_creates_directories(self, swiftvm_paths):
        """Test ensure() creates the working directories."""
        swiftvm_paths.ensure()
        for path in (
            swiftvm_paths.bin_dir,
            swiftvm_paths.toolchains_dir,
            swiftvm_paths.lock_dir,
            swiftvm_paths.pending_dir,
            swiftvm_paths.downloads_dir,
        ):
            assert path.is_dir()
