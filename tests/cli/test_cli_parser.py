"""
Tests for the swiftvm command-line interface.

Commands run against a real ToolchainManager in a temporary home; only
build_manager is patched so no host detection or network access happens.
"""

import builtins
import json
import logging
from contextlib import ExitStack
from unittest.mock import patch

import pytest

from swiftvm.cli.parser import CLI
from swiftvm.core.exceptions import UnsupportedPlatformError
from swiftvm.core.version import ToolchainVersion
from swiftvm.toolchain.engine import ToolchainManager

COMMAND_MODULES = [
    "init",
    "install",
    "list_installed",
    "list_available",
    "use",
    "link",
    "unlink",
    "run",
    "uninstall",
    "update",
    "repair",
    "list_dependencies",
]


@pytest.fixture(autouse=True)
def restore_logging():
    """CLI.run reconfigures the root logger; undo it after each test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture(autouse=True)
def project_dir(tmp_path, monkeypatch):
    """Run every command from an empty directory outside any git checkout."""
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    return project


@pytest.fixture
def run_cli():
    """Run the CLI with every command's build_manager returning manager."""

    def run(argv, manager=None, **patch_kwargs):
        if not patch_kwargs:
            patch_kwargs = {"return_value": manager}
        with ExitStack() as stack:
            for module in COMMAND_MODULES:
                stack.enter_context(
                    patch(f"swiftvm.cli.commands.{module}.build_manager", **patch_kwargs)
                )
            return CLI().run(argv)

    return run


class TestParser:
    """Test argument parsing."""

    def test_no_command_prints_help(self, capsys):
        """Test running without a command."""
        assert CLI().run([]) == 1
        assert "usage: swiftvm" in capsys.readouterr().out

    def test_version(self, capsys):
        """Test --version."""
        with pytest.raises(SystemExit) as exc_info:
            CLI().run(["--version"])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("swiftvm ")

    def test_invalid_arguments(self):
        """Test argparse errors exit with status 2."""
        with pytest.raises(SystemExit) as exc_info:
            CLI().run(["uninstall"])
        assert exc_info.value.code == 2

    def test_run_keeps_command_options(self):
        """Test options after the command belong to the command."""
        args = CLI().parse_args(["run", "swift", "build", "-v", "+5.10"])
        assert args.run_command == ["swift", "build", "-v", "+5.10"]
        assert not args.verbose

    def test_install_without_selector(self, run_cli, manager, capsys):
        """Test install with no selector and no .swift-version is an input error."""
        assert run_cli(["install"], manager) == 2
        assert ".swift-version" in capsys.readouterr().err

    def test_global_options(self, tmp_path):
        """Test directory options are parsed as paths."""
        args = CLI().parse_args(
            ["--home-dir", str(tmp_path), "-v", "install", "5.10", "--use", "--no-verify"]
        )
        assert args.home_dir == tmp_path
        assert args.verbose
        assert args.selector == "5.10"
        assert args.use and args.no_verify

    def test_list_format_choices(self):
        """Test --format only accepts text and json."""
        assert CLI().parse_args(["list", "--format", "json"]).format == "json"
        with pytest.raises(SystemExit):
            CLI().parse_args(["list", "--format", "yaml"])


class TestExitCodes:
    """Test error categories map to exit statuses."""

    def test_invalid_selector(self, run_cli, manager, capsys):
        """Test malformed selectors exit with status 2."""
        assert run_cli(["install", "5.x"], manager) == 2
        err = capsys.readouterr().err
        assert "ERROR: " in err
        assert "5.x" in err

    def test_no_match(self, run_cli, manager, fake_downloads):
        """Test selectors with no match exit with status 2."""
        assert run_cli(["install", "4.2"], manager) == 2

    def test_unsupported_platform(self, run_cli):
        """Test unsupported hosts exit with status 3."""
        error = UnsupportedPlatformError("Unsupported operating system: Plan9")
        assert run_cli(["list"], side_effect=error) == 3

    def test_keyboard_interrupt(self, run_cli):
        """Test Ctrl-C exits with status 130."""
        assert run_cli(["list"], side_effect=KeyboardInterrupt) == 130

    def test_unexpected_error(self, run_cli):
        """Test unexpected exceptions exit with status 1."""
        assert run_cli(["list"], side_effect=RuntimeError("boom")) == 1

    def test_not_initialized(self, run_cli, manager_context, capsys):
        """Test commands before init point at 'swiftvm init'."""
        assert run_cli(["list"], ToolchainManager(manager_context)) == 1
        assert "swiftvm init" in capsys.readouterr().err

    def test_declined_confirmation(self, run_cli, manager, fake_downloads):
        """Test answering no aborts with status 130."""
        manager.resolve_and_install("5.10.0")
        with patch.object(builtins, "input", return_value="n"):
            assert run_cli(["uninstall", "5.10.0"], manager) == 130
        assert manager.load_config().is_installed(ToolchainVersion.parse("5.10.0"))


class TestCommands:
    """Test commands end to end."""

    def test_init(self, run_cli, manager_context, capsys):
        """Test init -y creates the config."""
        manager = ToolchainManager(manager_context)
        code = run_cli(["init", "-y", "--skip-install", "--no-modify-profile"], manager)

        assert code == 0
        assert manager_context.paths.config_file.exists()
        assert "swiftvm initialized successfully!" in capsys.readouterr().out

    def test_install_and_list(self, run_cli, manager, fake_downloads, capsys):
        """Test install followed by list in both formats."""
        assert run_cli(["install", "5.10"], manager) == 0
        assert "5.10.1 installed successfully" in capsys.readouterr().out

        assert run_cli(["list"], manager) == 0
        assert "5.10.1 (in use)" in capsys.readouterr().out

        assert run_cli(["list", "--format", "json"], manager) == 0
        data = json.loads(capsys.readouterr().out)
        assert [row["version"] for row in data["toolchains"]] == ["5.10.1"]

    def test_list_empty(self, run_cli, manager, capsys):
        """Test list with nothing installed."""
        assert run_cli(["list"], manager) == 0
        assert "No toolchains are installed" in capsys.readouterr().out

    def test_list_available(self, run_cli, manager, capsys):
        """Test list-available groups releases."""
        assert run_cli(["list-available"], manager) == 0
        out = capsys.readouterr().out
        assert out.startswith("Stable releases:")
        assert "  5.10.1" in out

    def test_use(self, run_cli, manager, fake_downloads, capsys):
        """Test switching and printing the active toolchain."""
        manager.resolve_and_install("5.9.0")
        manager.resolve_and_install("5.10.0")
        capsys.readouterr()

        assert run_cli(["use", "5.10"], manager) == 0
        assert "Set the global default to 5.10.0" in capsys.readouterr().out
        assert run_cli(["use"], manager) == 0
        assert "5.10.0 (default)" in capsys.readouterr().out

        assert run_cli(["use", "-p"], manager) == 0
        expected = manager.paths.toolchains_dir / "5.10.0"
        assert capsys.readouterr().out.strip() == str(expected)

    def test_use_nothing_active(self, run_cli, manager, capsys):
        """Test use with nothing active."""
        assert run_cli(["use"], manager) == 0
        assert "No toolchain is in use" in capsys.readouterr().out

    def test_use_in_git_checkout(
        self, run_cli, manager, fake_downloads, project_dir, monkeypatch, capsys
    ):
        """Test use inside a git checkout writes .swift-version at its root."""
        manager.resolve_and_install("5.9.0")
        manager.resolve_and_install("5.10.0")
        (project_dir / ".git").mkdir()
        subdir = project_dir / "Sources"
        subdir.mkdir()
        capsys.readouterr()

        monkeypatch.chdir(subdir)
        assert run_cli(["use", "5.10"], manager) == 0
        assert run_cli(["use"], manager) == 0

        version_file = project_dir / ".swift-version"
        assert version_file.read_text() == "5.10.0\n"
        out = capsys.readouterr().out
        assert "5.10.0 (" in out and ".swift-version)" in out
        assert manager.load_config().in_use == ToolchainVersion.parse("5.9.0")

    def test_use_global_default_ignores_version_file(
        self, run_cli, manager, fake_downloads, project_dir, capsys
    ):
        """Test -g changes the global default and leaves .swift-version alone."""
        manager.resolve_and_install("5.9.0")
        manager.resolve_and_install("5.10.0")
        (project_dir / ".swift-version").write_text("5.9.0\n")
        capsys.readouterr()

        assert run_cli(["use", "-g", "5.10"], manager) == 0
        assert run_cli(["use", "-g"], manager) == 0

        assert "5.10.0 (default)" in capsys.readouterr().out
        assert (project_dir / ".swift-version").read_text() == "5.9.0\n"
        assert manager.load_config().in_use == ToolchainVersion.parse("5.10.0")

    def test_use_broken_version_file(self, run_cli, manager, fake_downloads, project_dir, capsys):
        """Test a .swift-version naming nothing installed is an input error."""
        manager.resolve_and_install("5.10.0")
        (project_dir / ".swift-version").write_text("5.9\n")

        assert run_cli(["use"], manager) == 2
        err = capsys.readouterr().err
        assert "matches no installed toolchain" in err
        assert "swiftvm install 5.9" in err

    def test_install_from_version_file(
        self, run_cli, manager, fake_downloads, project_dir, capsys
    ):
        """Test install with no selector reads .swift-version."""
        (project_dir / ".swift-version").write_text("5.9\n")

        assert run_cli(["install"], manager) == 0
        assert "5.9.2 installed successfully" in capsys.readouterr().out
        assert fake_downloads == {"5.9.2": 1}

    def test_unlink(self, run_cli, manager, fake_downloads):
        """Test unlink clears activation."""
        manager.resolve_and_install("5.10.0")
        assert run_cli(["unlink"], manager) == 0
        assert manager.in_use() is None

    def test_link_after_unlink(self, run_cli, manager, fake_downloads, capsys):
        """Test link puts a toolchain back after unlink."""
        manager.resolve_and_install("5.10.0")
        manager.unlink()
        capsys.readouterr()

        assert run_cli(["link", "5.10"], manager) == 0
        assert "Linked 5.10.0" in capsys.readouterr().out
        assert manager.in_use().version == ToolchainVersion.parse("5.10.0")
        assert manager.paths.active_link.is_symlink()

        assert run_cli(["link"], manager) == 0
        assert "5.10.0 is already linked" in capsys.readouterr().out

    def test_link_nothing_selected(self, run_cli, manager, fake_downloads, capsys):
        """Test link with nothing selected asks for a toolchain."""
        manager.resolve_and_install("5.10.0")
        manager.unlink()

        assert run_cli(["link"], manager) == 2
        assert "No toolchain to link" in capsys.readouterr().err

    def test_run(self, run_cli, manager, fake_downloads, test_platform):
        """Test run uses the +SELECTOR toolchain and returns its exit status."""
        manager.resolve_and_install("5.9.0")
        manager.resolve_and_install("5.10.0")

        with patch.object(test_platform, "run_program", return_value=7) as run_program:
            assert run_cli(["run", "swift", "build", "+5.10", "++debug"], manager) == 7

        bin_dir = manager.paths.toolchains_dir / "5.10.0" / "usr" / "bin"
        executable, args = run_program.call_args.args
        assert executable == str(bin_dir / "swift")
        assert args == ["build", "+debug"]
        env = run_program.call_args.kwargs["env"]
        assert env["PATH"].startswith(str(bin_dir))
        assert env["SWIFTVM_TOOLCHAIN"] == "5.10.0"

    def test_run_without_command(self, run_cli, manager, fake_downloads):
        """Test run with only a selector is an input error."""
        manager.resolve_and_install("5.10.0")
        assert run_cli(["run", "+5.10"], manager) == 2

    def test_uninstall_matching(self, run_cli, manager, fake_downloads, capsys):
        """Test uninstall removes every match of a selector."""
        manager.resolve_and_install("5.9.0")
        manager.resolve_and_install("5.9.2")
        manager.resolve_and_install("5.10.0")
        capsys.readouterr()

        assert run_cli(["uninstall", "5.9", "-y"], manager) == 0

        out = capsys.readouterr().out
        assert "5.9.0 uninstalled" in out
        assert "5.9.2 uninstalled" in out
        assert list(manager.load_config().installed) == ["5.10.0"]

    def test_update(self, run_cli, manager, fake_downloads, capsys):
        """Test update reports the new version."""
        manager.resolve_and_install("5.10.0")
        capsys.readouterr()

        assert run_cli(["update", "-y"], manager) == 0
        assert "Updated to 5.10.1" in capsys.readouterr().out

        assert run_cli(["update", "-y"], manager) == 0
        assert "Already up to date" in capsys.readouterr().out

    def test_update_prompts(self, run_cli, manager, fake_downloads, capsys):
        """Test update shows the plan and asks before replacing."""
        manager.resolve_and_install("5.10.0")
        capsys.readouterr()

        with patch.object(builtins, "input", return_value="y") as prompt:
            assert run_cli(["update"], manager) == 0

        prompt.assert_called_once()
        out = capsys.readouterr().out
        assert "5.10.0 will be replaced by 5.10.1" in out
        assert "Updated to 5.10.1" in out

    def test_update_declined(self, run_cli, manager, fake_downloads):
        """Test declining the update changes nothing."""
        manager.resolve_and_install("5.10.0")

        with patch.object(builtins, "input", return_value="n"):
            assert run_cli(["update"], manager) == 130

        assert "5.10.1" not in fake_downloads
        assert list(manager.load_config().installed) == ["5.10.0"]

    def test_repair(self, run_cli, manager, capsys):
        """Test repair exits 1 when something needs attention."""
        assert run_cli(["repair"], manager) == 0
        assert "Nothing to repair" in capsys.readouterr().out

        (manager.paths.toolchains_dir / "5.9.0").mkdir()
        assert run_cli(["repair"], manager) == 1
        assert "not tracked by swiftvm" in capsys.readouterr().err

    def test_repair_unreadable_marker(self, run_cli, manager, capsys):
        """Test an unreadable pending marker is reported and removed."""
        marker = manager.paths.pending_dir / "junk.json"
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_text("{")

        assert run_cli(["repair"], manager) == 1
        assert "unreadable pending marker" in capsys.readouterr().err
        assert not marker.exists()

        assert run_cli(["repair"], manager) == 0

    def test_list_dependencies(self, run_cli, manager, test_platform, capsys):
        """Test missing packages are marked with an install command."""
        with patch.object(
            test_platform, "missing_system_packages", return_value=["libz3-dev"]
        ):
            assert run_cli(["list-dependencies", "--missing"], manager) == 0

        out = capsys.readouterr().out
        assert out.splitlines()[0] == "libz3-dev"
        assert "Install with: apt-get -y install libz3-dev" in out
