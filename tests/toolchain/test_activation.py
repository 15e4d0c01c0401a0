"""
Unit tests for the activation link and environment scripts.
"""

import os

import pytest

from swiftvm.core.version import ToolchainVersion
from swiftvm.toolchain.activation import ActivationArtifact
from swiftvm.toolchain.config_store import Config, InstalledToolchain

V5100 = ToolchainVersion.parse("5.10.0")


@pytest.fixture
def artifact(swiftvm_paths, test_platform):
    swiftvm_paths.ensure()
    return ActivationArtifact(swiftvm_paths, test_platform)


@pytest.fixture
def config(swiftvm_paths, linux_descriptor):
    toolchain = swiftvm_paths.toolchains_dir / "5.10.0"
    (toolchain / "usr" / "bin").mkdir(parents=True)
    return Config(
        home_dir=swiftvm_paths.home_dir,
        bin_dir=swiftvm_paths.bin_dir,
        toolchains_dir=swiftvm_paths.toolchains_dir,
        platform=linux_descriptor,
    ).with_installed(InstalledToolchain(V5100, toolchain, ""))


class TestActivationArtifact:
    """Test ActivationArtifact.write."""

    def test_link_follows_active(self, artifact, config, swiftvm_paths):
        """Test the link points at the active toolchain."""
        target = artifact.write(config.with_in_use(V5100))

        assert target == swiftvm_paths.toolchains_dir / "5.10.0"
        assert os.readlink(swiftvm_paths.active_link) == str(target)
        assert artifact.current_target() == target
        assert (swiftvm_paths.active_link / "usr" / "bin").is_dir()

    def test_no_active_removes_link(self, artifact, config, swiftvm_paths):
        """Test clearing activation removes the link."""
        artifact.write(config.with_in_use(V5100))
        assert artifact.write(config) is None

        assert not swiftvm_paths.active_link.is_symlink()
        assert artifact.current_target() is None

    def test_env_scripts(self, artifact, config, swiftvm_paths):
        """Test env.sh and env.fish export locations and PATH."""
        artifact.write(config.with_in_use(V5100))

        sh = swiftvm_paths.env_sh.read_text()
        assert f"export SWIFTVM_HOME_DIR={swiftvm_paths.home_dir}" in sh
        assert "export SWIFTVM_TOOLCHAIN=5.10.0" in sh
        assert f"{swiftvm_paths.active_link}/usr/bin" in sh
        # bin_dir is prepended last so it wins
        assert sh.rindex(str(swiftvm_paths.bin_dir) + ":") > sh.rindex("active/usr/bin")

        fish = swiftvm_paths.env_fish.read_text()
        assert f'set -gx SWIFTVM_BIN_DIR "{swiftvm_paths.bin_dir}"' in fish
        assert "if not contains" in fish

    def test_env_without_active(self, artifact, config, swiftvm_paths):
        """Test the scripts are still written when nothing is active."""
        artifact.write(config)
        assert "export SWIFTVM_TOOLCHAIN=''" in swiftvm_paths.env_sh.read_text()

    def test_quoting(self, tmp_path, test_platform, linux_descriptor):
        """Test paths with spaces are quoted."""
        from swiftvm.core.directory import SwiftvmPaths

        home = tmp_path / "my home"
        paths = SwiftvmPaths(home, home / "bin", home / "toolchains")
        paths.ensure()
        artifact = ActivationArtifact(paths, test_platform)

        assert f"export SWIFTVM_HOME_DIR='{home}'" in artifact.render_sh(None)
        assert f'set -gx SWIFTVM_HOME_DIR "{home}"' in artifact.render_fish(None)
