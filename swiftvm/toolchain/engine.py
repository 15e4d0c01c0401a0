"""
Toolchain installation and activation engine.

ToolchainManager implements every user-visible operation (install, use,
link, unlink, run, uninstall, update, list, init, repair) on top of the
catalog client, the download pipeline, the platform and the config store.
The CLI is a thin layer that calls these methods.

Every mutating operation:
1. acquires the config lock (bounded wait, bounded retries)
2. runs the repair pass, so interrupted earlier operations are reconciled
3. re-reads the config and applies its change through ConfigStore.mutate()
4. regenerates the activation artifact last

Example:
    >>> context = ManagerContext.create()
    >>> manager = ToolchainManager(context)
    >>> result = manager.resolve_and_install("5.10", activate=True)
    >>> print(result.version.name)
    5.10.1
"""

import logging
import os
import shlex
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import requests

from swiftvm.catalog.client import CatalogClient, CatalogEntry, ReleaseAsset
from swiftvm.core.directory import (
    BIN_DIR_ENV,
    TOOLCHAINS_DIR_ENV,
    SwiftvmPaths,
    resolve_paths,
)
from swiftvm.core.download import DownloadProgress, fetch_bytes
from swiftvm.core.exceptions import (
    CorruptConfigError,
    FilesystemError,
    InputError,
    InvalidStateTransition,
    OrphanedToolchainError,
    ToolchainNotInstalledError,
)
from swiftvm.core.filesystem import (
    atomic_write,
    is_empty_directory,
    remove_symlink,
    safe_rmtree,
    sibling_temp_path,
)
from swiftvm.core.locking import LockManager
from swiftvm.core.settings import Settings, load_settings
from swiftvm.core.verification import SignatureVerifier
from swiftvm.core.version import (
    LatestMainSnapshot,
    LatestMinor,
    LatestPatch,
    LatestReleaseSnapshot,
    Selector,
    StableRelease,
    ToolchainVersion,
    parse_selector,
    resolve,
)
from swiftvm.platforms import get_current_platform
from swiftvm.platforms.base import Platform, PlatformDescriptor
from swiftvm.toolchain.activation import ActivationArtifact
from swiftvm.toolchain.config_store import (
    Config,
    ConfigStore,
    InstalledToolchain,
    utc_timestamp,
)
from swiftvm.toolchain.pipeline import fetch_and_verify
from swiftvm.toolchain.repair import PendingMarker, RepairReport, run_repair
from swiftvm.toolchain.selection import (
    VERSION_FILE_NAME,
    ToolchainSelection,
    find_new_version_file,
    find_version_file,
    read_version_file,
    select_toolchain,
    write_version_file,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Install State Machine
# ============================================================================


class InstallState(Enum):
    """Stages of one install attempt."""

    REQUESTED = "requested"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    EXTRACTING = "extracting"
    REGISTERED = "registered"
    ACTIVATED = "activated"
    FAILED = "failed"


_TRANSITIONS = {
    InstallState.REQUESTED: {InstallState.DOWNLOADING, InstallState.FAILED},
    InstallState.DOWNLOADING: {InstallState.VERIFYING, InstallState.FAILED},
    InstallState.VERIFYING: {InstallState.EXTRACTING, InstallState.FAILED},
    InstallState.EXTRACTING: {InstallState.REGISTERED, InstallState.FAILED},
    InstallState.REGISTERED: {InstallState.ACTIVATED},
    InstallState.ACTIVATED: set(),
    InstallState.FAILED: set(),
}


@dataclass
class InstallAttempt:
    """
    Tracks the state of one install and rejects illegal transitions.

    Attributes:
        version: Toolchain being installed
        state: Current state
        history: (state, ISO-8601 timestamp) for every state entered
        error: Exception that moved the attempt to FAILED, if any
    """

    version: ToolchainVersion
    state: InstallState = InstallState.REQUESTED
    history: List[Tuple[InstallState, str]] = field(default_factory=list)
    error: Optional[BaseException] = None

    def __post_init__(self):
        if not self.history:
            self.history.append((self.state, utc_timestamp()))

    def advance(self, new_state: InstallState) -> None:
        """
        Raises:
            InvalidStateTransition: If new_state is not reachable from state
        """
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidStateTransition(
                f"Install of {self.version.name} cannot go from "
                f"{self.state.value} to {new_state.value}"
            )
        logger.debug(f"{self.version.name}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append((new_state, utc_timestamp()))

    def fail(self, error: BaseException) -> None:
        self.error = error
        if InstallState.FAILED in _TRANSITIONS[self.state]:
            self.advance(InstallState.FAILED)

    @property
    def registered(self) -> bool:
        return self.state in (InstallState.REGISTERED, InstallState.ACTIVATED)


# ============================================================================
# Results and Options
# ============================================================================


@dataclass
class InstallResult:
    """Outcome of an install."""

    version: ToolchainVersion
    path: Path
    already_installed: bool = False
    activated: bool = False
    post_install_script: Optional[Path] = None
    attempt: Optional[InstallAttempt] = None


@dataclass
class UseResult:
    """
    Outcome of use or link.

    Attributes:
        version: Toolchain now selected
        previous: Toolchain selected before, if any
        changed: False if version was already selected
        version_file: The .swift-version file written, when the selection is
            project-level rather than the global default
    """

    version: ToolchainVersion
    previous: Optional[ToolchainVersion] = None
    changed: bool = True
    version_file: Optional[Path] = None


@dataclass
class UpdatePlan:
    """What update would do; produced by plan_update() for confirmation."""

    current: ToolchainVersion
    target: ToolchainVersion
    asset: ReleaseAsset
    activate: bool


@dataclass
class ToolchainListing:
    """One row of a list or list-available output."""

    version: ToolchainVersion
    installed: bool = False
    in_use: bool = False
    path: Optional[Path] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "version": self.version.name,
            "kind": "stable" if self.version.is_stable() else "snapshot",
            "installed": self.installed,
            "in_use": self.in_use,
            "path": str(self.path) if self.path else None,
        }


@dataclass
class InitOptions:
    """Options for ToolchainManager.init()."""

    assume_yes: bool = False
    skip_install: bool = False
    no_modify_profile: bool = False
    overwrite: bool = False
    verify: bool = True
    platform_hint: Optional[str] = None
    home_dir: Optional[Path] = None
    bin_dir: Optional[Path] = None
    toolchains_dir: Optional[Path] = None


@dataclass
class InitResult:
    """Outcome of init."""

    config_path: Path
    platform: PlatformDescriptor
    profile_file: Optional[Path] = None
    install: Optional[InstallResult] = None


# ============================================================================
# Context
# ============================================================================


@dataclass
class ManagerContext:
    """Everything the engine depends on, assembled once per invocation."""

    platform: Platform
    paths: SwiftvmPaths
    settings: Settings
    catalog: CatalogClient
    store: ConfigStore
    verifier: SignatureVerifier
    session: Optional[requests.Session] = None

    @property
    def lock_manager(self) -> LockManager:
        return self.store.lock_manager

    @classmethod
    def create(
        cls,
        home_dir: Optional[Path] = None,
        bin_dir: Optional[Path] = None,
        toolchains_dir: Optional[Path] = None,
        platform: Optional[Platform] = None,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        environ=None,
    ) -> "ManagerContext":
        """
        Build a context for the current host.

        Directories not given explicitly come from the environment, then from
        an existing config, then from platform defaults.
        """
        platform = platform or get_current_platform()
        paths = resolve_paths(platform, home_dir, bin_dir, toolchains_dir, environ)

        if settings is None:
            settings = load_settings(paths.settings_file)

        lock_manager = LockManager(
            paths.lock_dir, timeout=settings.lock_timeout, retries=settings.lock_retries
        )
        store = ConfigStore(paths.config_file, lock_manager)

        if store.exists() and (bin_dir is None or toolchains_dir is None):
            paths = cls._paths_from_config(store, paths, bin_dir, toolchains_dir, environ)

        def fetch(url: str) -> bytes:
            return fetch_bytes(
                url,
                timeout=settings.timeout,
                max_retries=settings.max_retries,
                backoff_base=settings.backoff_base,
                session=session,
            )

        return cls(
            platform=platform,
            paths=paths,
            settings=settings,
            catalog=CatalogClient(settings, platform, session=session),
            store=store,
            verifier=SignatureVerifier(paths.gnupg_dir, settings.keys_url, fetch=fetch),
            session=session,
        )

    @staticmethod
    def _paths_from_config(store, paths, bin_dir, toolchains_dir, environ) -> SwiftvmPaths:
        environ = os.environ if environ is None else environ
        try:
            config = store.load()
        except CorruptConfigError as e:
            # Leave the error to the operation; init --overwrite replaces the file
            logger.debug(f"Ignoring unreadable config for path defaults: {e}")
            return paths
        return SwiftvmPaths(
            home_dir=paths.home_dir,
            bin_dir=(
                paths.bin_dir
                if bin_dir is not None or environ.get(BIN_DIR_ENV)
                else config.bin_dir
            ),
            toolchains_dir=(
                paths.toolchains_dir
                if toolchains_dir is not None or environ.get(TOOLCHAINS_DIR_ENV)
                else config.toolchains_dir
            ),
        )


# ============================================================================
# Manager
# ============================================================================


def _series_selector(version: ToolchainVersion, selector: Optional[Selector]) -> Selector:
    """Selector for newer versions in the same release series as version."""
    if isinstance(version, StableRelease):
        if isinstance(selector, LatestMinor):
            return LatestMinor(version.major)
        return LatestPatch(version.major, version.minor)
    if version.branch.is_main:
        return LatestMainSnapshot()
    return LatestReleaseSnapshot(version.branch.major, version.branch.minor)


def split_run_arguments(command: Sequence[str]) -> Tuple[List[str], Optional[Selector]]:
    """
    Separate a '+SELECTOR' argument from the command to run.

    '++' passes every later argument through untouched and a leading '++'
    on an argument escapes it to a literal '+' (``++foo`` -> ``+foo``).

    Raises:
        InputError: If there is no command left to run
        InvalidSelectorSyntax: If the selector cannot be parsed
    """
    argv: List[str] = []
    selector = None
    passthrough = False
    for arg in command:
        if passthrough:
            argv.append(arg)
        elif arg == "++":
            passthrough = True
        elif arg.startswith("++"):
            argv.append(arg[1:])
        elif arg.startswith("+") and selector is None:
            selector = parse_selector(arg[1:])
        else:
            argv.append(arg)

    if not argv:
        raise InputError(
            "No command to run", hint="Example: swiftvm run swift build +5.10"
        )
    return argv, selector


class ToolchainManager:
    """
    High-level toolchain operations.

    Attributes:
        context: Platform, paths, settings, catalog, config store and verifier
    """

    def __init__(self, context: ManagerContext):
        self.context = context
        self.platform = context.platform
        self.paths = context.paths
        self.store = context.store
        self.artifact = ActivationArtifact(context.paths, context.platform)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock(self):
        return self.context.lock_manager.config_lock()

    def load_config(self) -> Config:
        return self.store.load()

    def _catalog_entries(
        self, descriptor: PlatformDescriptor, selector: Optional[Selector]
    ) -> List[CatalogEntry]:
        catalog = self.context.catalog
        branch = selector.snapshot_branch() if selector is not None else None
        if branch is not None:
            return catalog.list_snapshots(descriptor, branch)
        return catalog.list_releases(descriptor)

    def _target_dir(self, config: Config, version: ToolchainVersion) -> Path:
        return Path(config.toolchains_dir) / self.platform.toolchain_dir_name(version)

    def _set_active(self, version: Optional[ToolchainVersion]) -> Config:
        config = self.store.mutate(lambda c: c.with_in_use(version))
        self.artifact.write(config)
        return config

    def _version_file_selector(self, cwd: Optional[Path]) -> Selector:
        start = cwd if cwd is not None else Path.cwd()
        version_file = find_version_file(start)
        if version_file is None:
            raise InputError(
                f"No toolchain selector given and no {VERSION_FILE_NAME} file "
                f"found in {start} or its parents",
                hint="Name the toolchain to install, e.g. 'swiftvm install latest'",
            )
        logger.info(f"Using the toolchain selected by {version_file}")
        return read_version_file(version_file)

    def resolve_installed(self, selector_text: str) -> ToolchainVersion:
        """
        Resolve selector_text against the installed toolchains.

        Raises:
            InvalidSelectorSyntax: If selector_text cannot be parsed
            NoMatchingVersion: If no installed toolchain matches
        """
        selector = parse_selector(selector_text)
        config = self.load_config()
        return resolve(selector, config.installed_versions(), "installed toolchains")

    def in_use(self) -> Optional[InstalledToolchain]:
        """The active toolchain, if any (read-only, no lock)."""
        config = self.load_config()
        return config.get(config.in_use) if config.in_use else None

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    def resolve_and_install(
        self,
        selector_text: Optional[str],
        activate: bool = False,
        verify: bool = True,
        progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
        post_install_file: Optional[Path] = None,
        cwd: Optional[Path] = None,
    ) -> InstallResult:
        """
        Resolve a selector against the catalog and install the result.

        Without selector_text, the selector is read from the nearest
        .swift-version file at or above cwd.

        Raises:
            InvalidSelectorSyntax: If selector_text cannot be parsed
            InputError: If no selector is given and no version file is found
            VersionFileError: If the version file is unusable
            NoMatchingVersion: If the catalog has no matching version
            CatalogNetworkError: If the catalog can't be fetched
        """
        if selector_text:
            selector = parse_selector(selector_text)
        else:
            selector = self._version_file_selector(cwd)
            selector_text = str(selector)
        config = self.load_config()

        logger.info(f"Fetching the list of available toolchains for {selector}...")
        entries = self._catalog_entries(config.platform, selector)
        version = resolve(selector, [entry.version for entry in entries])
        asset = next(entry.asset for entry in entries if entry.version == version)

        logger.info(f"Selected {version.name} for '{selector_text}'")
        return self.install_version(
            version,
            asset,
            activate=activate,
            verify=verify,
            progress_callback=progress_callback,
            post_install_file=post_install_file,
        )

    def install_version(
        self,
        version: ToolchainVersion,
        asset: Optional[ReleaseAsset] = None,
        activate: bool = False,
        verify: bool = True,
        progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
        post_install_file: Optional[Path] = None,
    ) -> InstallResult:
        """
        Install a concrete version.

        Installing an installed version is a no-op apart from the requested
        activation. The first toolchain installed becomes active.

        Raises:
            OrphanedToolchainError: If the target directory exists untracked
            DownloadError, IntegrityError, ExtractionFailed: On failure; no
                partial toolchain is left behind
        """
        with self._lock():
            self.repair()
            config = self.load_config()

            if config.is_installed(version):
                entry = config.get(version)
                logger.info(f"Toolchain {version.name} is already installed")
                activated = False
                if activate and config.in_use != version:
                    self._set_active(version)
                    activated = True
                    logger.info(f"The global default toolchain is now {version.name}")
                return InstallResult(
                    version, entry.path, already_installed=True, activated=activated
                )

            if asset is None:
                asset = self.context.catalog.asset_for(version, config.platform)

            target = self._target_dir(config, version)
            if target.exists() and not is_empty_directory(target):
                raise OrphanedToolchainError(
                    f"Directory {target} exists but is not tracked by swiftvm",
                    path=target,
                    hint="Remove the directory or run 'swiftvm repair' and retry",
                )

            attempt = InstallAttempt(version)
            result = self._install_locked(
                attempt, asset, target, verify, progress_callback
            )

            if activate or config.in_use is None:
                self._set_active(version)
                attempt.advance(InstallState.ACTIVATED)
                result.activated = True
                logger.info(f"The global default toolchain is now {version.name}")

        result.post_install_script = self.platform.post_install_hook(
            target, version, config.platform, post_install_file
        )
        return result

    def _install_locked(
        self,
        attempt: InstallAttempt,
        asset: ReleaseAsset,
        target: Path,
        verify: bool,
        progress_callback: Optional[Callable[[DownloadProgress], None]],
    ) -> InstallResult:
        version = attempt.version
        archive = self.paths.downloads_dir / asset.file_name
        marker = PendingMarker("install", version, target)
        marker_written = False

        try:
            attempt.advance(InstallState.DOWNLOADING)
            fetch_and_verify(
                asset,
                archive,
                settings=self.context.settings,
                platform=self.platform,
                verifier=self.context.verifier,
                progress_callback=progress_callback,
                verify=verify,
                session=self.context.session,
                on_verify=lambda: attempt.advance(InstallState.VERIFYING),
                extract_dir=target.parent,
            )
            if attempt.state == InstallState.DOWNLOADING:
                attempt.advance(InstallState.VERIFYING)

            attempt.advance(InstallState.EXTRACTING)
            marker.write(self.paths.pending_dir)
            marker_written = True
            self.platform.extract(archive, target)

            entry = InstalledToolchain(version, target, utc_timestamp())
            self.store.mutate(lambda c: c.with_installed(entry))
            attempt.advance(InstallState.REGISTERED)
            logger.info(f"Installed {version.name} to {target}")
        except BaseException as e:
            attempt.fail(e)
            if not attempt.registered and target.exists():
                safe_rmtree(target, require_prefix=target.parent)
            logger.debug(f"Install of {version.name} failed: {e}")
            raise
        finally:
            if marker_written:
                marker.remove(self.paths.pending_dir)
            archive.unlink(missing_ok=True)

        return InstallResult(version, target, attempt=attempt)

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    def activate(self, version: ToolchainVersion) -> bool:
        """
        Make an installed toolchain the active one.

        Returns:
            False if version was already active

        Raises:
            ToolchainNotInstalledError: If version is not installed
        """
        with self._lock():
            self.repair()
            config = self.load_config()
            if not config.is_installed(version):
                raise ToolchainNotInstalledError(version.name)

            if config.in_use == version:
                logger.info(f"The global default toolchain is already {version.name}")
                return False

            previous = config.in_use
            self._set_active(version)

        if previous is not None:
            logger.info(
                f"The global default toolchain has been set to {version.name} "
                f"(was {previous.name})"
            )
        else:
            logger.info(f"The global default toolchain has been set to {version.name}")
        return True

    def unlink(self) -> bool:
        """
        Deactivate the active toolchain.

        Returns:
            False if nothing was active
        """
        with self._lock():
            self.repair()
            config = self.load_config()
            if config.in_use is None:
                logger.info("No toolchain is in use")
                return False
            self._set_active(None)

        logger.info(f"Toolchain {config.in_use.name} is no longer in use")
        return True

    # ------------------------------------------------------------------
    # Project selection
    # ------------------------------------------------------------------

    def select(
        self, cwd: Optional[Path] = None, global_default: bool = False
    ) -> ToolchainSelection:
        """The toolchain that applies in cwd (read-only, no lock)."""
        return select_toolchain(self.load_config(), cwd, global_default)

    def use(
        self,
        selector_text: str,
        cwd: Optional[Path] = None,
        global_default: bool = False,
    ) -> UseResult:
        """
        Select an installed toolchain for cwd.

        A .swift-version file governing cwd is rewritten. Without one, a new
        file is created at the root of the enclosing git checkout. Outside a
        checkout, or with global_default, the global default is changed.

        Raises:
            InvalidSelectorSyntax: If selector_text cannot be parsed
            NoMatchingVersion: If no installed toolchain matches
        """
        version = self.resolve_installed(selector_text)
        start = cwd if cwd is not None else Path.cwd()
        selection = self.select(start, global_default)
        previous = selection.version

        if previous == version:
            logger.info(f"{version.name} is already in use")
            return UseResult(
                version, previous, changed=False, version_file=selection.version_file
            )

        if selection.from_version_file:
            # Whatever was wrong with the old contents is replaced
            write_version_file(selection.version_file, version)
            return UseResult(version, previous, version_file=selection.version_file)

        if not global_default:
            new_file = find_new_version_file(start)
            if new_file is not None:
                write_version_file(new_file, version)
                return UseResult(version, previous, version_file=new_file)

        self.activate(version)
        return UseResult(version, previous)

    def link(
        self, selector_text: Optional[str] = None, cwd: Optional[Path] = None
    ) -> UseResult:
        """
        Make a toolchain active again after unlink.

        Without selector_text, the toolchain selected by a .swift-version
        file is linked; failing that, the active toolchain stays linked.

        Raises:
            VersionFileError: If a version file exists but selects nothing
            InputError: If there is nothing to link
        """
        config = self.load_config()
        if selector_text:
            version = self.resolve_installed(selector_text)
        else:
            selection = select_toolchain(config, cwd)
            selection.raise_for_error()
            version = selection.version
            if version is None:
                raise InputError(
                    "No toolchain to link",
                    hint="Name one, e.g. 'swiftvm link 5.10'; "
                    "'swiftvm list' shows what is installed",
                )

        changed = self.activate(version)
        return UseResult(version, config.in_use, changed=changed)

    def run_command(self, command: Sequence[str], cwd: Optional[Path] = None) -> int:
        """
        Run a command with a toolchain's binaries first on PATH.

        The toolchain comes from a '+SELECTOR' argument when present, else
        from the .swift-version file or global default governing cwd.

        Returns:
            The command's exit status

        Raises:
            InputError: If no command is given or no toolchain is selected
            NoMatchingVersion: If +SELECTOR matches no installed toolchain
            SpawnFailed: If the command cannot be started
        """
        argv, selector = split_run_arguments(command)
        config = self.load_config()

        if selector is not None:
            version = resolve(selector, config.installed_versions(), "installed toolchains")
        else:
            selection = select_toolchain(config, cwd)
            selection.raise_for_error()
            version = selection.version
            if version is None:
                raise InputError(
                    "No installed toolchain is selected by a .swift-version file "
                    "or the global default",
                    hint="Run 'swiftvm use <toolchain>' or "
                    "'swiftvm install --use <toolchain>'",
                )

        bin_dir = self.platform.toolchain_bin_dir(config.get(version).path)
        executable = argv[0]
        # Prefer the toolchain's own tool over anything else named the same
        if os.sep not in executable and not Path(executable).exists():
            candidate = bin_dir / executable
            if candidate.is_file():
                executable = str(candidate)

        env = {
            "PATH": os.pathsep.join([str(bin_dir), os.environ.get("PATH", "")]),
            "SWIFTVM_TOOLCHAIN": version.name,
        }
        logger.debug(f"Running {argv} with {version.name}")
        return self.platform.run_program(executable, argv[1:], env=env)

    # ------------------------------------------------------------------
    # Uninstall
    # ------------------------------------------------------------------

    def uninstall(
        self, version: ToolchainVersion, reassign: Optional[ToolchainVersion] = None
    ) -> None:
        """
        Remove an installed toolchain.

        If version is active, activation is cleared first, or moved to
        reassign when given. There is no automatic fallback.

        Raises:
            ToolchainNotInstalledError: If version or reassign is not installed
        """
        with self._lock():
            self.repair()
            config = self.load_config()
            entry = config.get(version)
            if entry is None:
                raise ToolchainNotInstalledError(version.name)

            if reassign is not None:
                if reassign == version:
                    raise InputError(
                        f"Cannot hand activation to {version.name} while uninstalling it"
                    )
                if not config.is_installed(reassign):
                    raise ToolchainNotInstalledError(reassign.name)

            if config.in_use == version:
                self._set_active(reassign)
                if reassign is not None:
                    logger.info(f"The global default toolchain is now {reassign.name}")
            elif reassign is not None:
                logger.warning(
                    f"{version.name} is not in use; ignoring request to activate "
                    f"{reassign.name}"
                )

            marker = PendingMarker("uninstall", version, entry.path)
            marker.write(self.paths.pending_dir)

            removing = None
            if entry.path.exists():
                removing = sibling_temp_path(entry.path, "removing")
                try:
                    os.rename(entry.path, removing)
                except OSError as e:
                    marker.remove(self.paths.pending_dir)
                    raise FilesystemError(
                        f"Failed to remove {entry.path}: {e}"
                    ) from e

            self.store.mutate(lambda c: c.without(version))
            if removing is not None:
                safe_rmtree(removing, require_prefix=removing.parent)
            marker.remove(self.paths.pending_dir)

        logger.info(f"Uninstalled {version.name}")

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def plan_update(self, selector_text: Optional[str] = None) -> Optional[UpdatePlan]:
        """
        Work out which toolchain update would replace, and with what.

        With no selector the active toolchain is planned for (read-only,
        no lock).

        Returns:
            UpdatePlan, or None if already up to date

        Raises:
            NoMatchingVersion: If no installed toolchain matches the selector
            InputError: If no selector is given and nothing is in use
        """
        config = self.load_config()
        selector = None
        if selector_text:
            selector = parse_selector(selector_text)
            current = resolve(selector, config.installed_versions(), "installed toolchains")
        elif config.in_use is not None:
            current = config.in_use
        else:
            raise InputError(
                "No toolchain is in use", hint="Name the toolchain to update"
            )

        series = _series_selector(current, selector)
        entries = self._catalog_entries(config.platform, series)
        candidates = [entry for entry in entries if series.matches(entry.version)]
        if not candidates:
            logger.info(f"No toolchains in the {series} series are available")
            return None

        newest = resolve(series, [entry.version for entry in candidates])
        if not newest > current:
            logger.info(f"{current.name} is already up to date")
            return None

        asset = next(e.asset for e in candidates if e.version == newest)
        return UpdatePlan(
            current=current,
            target=newest,
            asset=asset,
            activate=config.in_use == current,
        )

    def apply_update(
        self,
        plan: UpdatePlan,
        verify: bool = True,
        progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
        post_install_file: Optional[Path] = None,
    ) -> InstallResult:
        """
        Install plan.target, activate it if plan.current was active, then
        uninstall plan.current.
        """
        logger.info(f"Updating {plan.current.name} to {plan.target.name}")
        result = self.install_version(
            plan.target,
            plan.asset,
            activate=plan.activate,
            verify=verify,
            progress_callback=progress_callback,
            post_install_file=post_install_file,
        )
        self.uninstall(plan.current)
        logger.info(f"Successfully updated {plan.current.name} to {plan.target.name}")
        return result

    def update(
        self,
        selector_text: Optional[str] = None,
        verify: bool = True,
        progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
        post_install_file: Optional[Path] = None,
    ) -> Optional[InstallResult]:
        """
        Replace an installed toolchain with the newest of its series.

        With no selector the active toolchain is updated. The new version is
        activated if the old one was active, then the old one is uninstalled.

        Returns:
            InstallResult for the new version, or None if already up to date

        Raises:
            NoMatchingVersion: If no installed toolchain matches the selector
        """
        plan = self.plan_update(selector_text)
        if plan is None:
            return None
        return self.apply_update(
            plan,
            verify=verify,
            progress_callback=progress_callback,
            post_install_file=post_install_file,
        )

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_installed(self, selector_text: Optional[str] = None) -> List[ToolchainListing]:
        """Installed toolchains, newest first (read-only, no lock)."""
        config = self.load_config()
        selector = parse_selector(selector_text) if selector_text else None

        listings = []
        for version in config.installed_versions():
            if selector is not None and not selector.matches(version):
                continue
            listings.append(
                ToolchainListing(
                    version=version,
                    installed=True,
                    in_use=config.in_use == version,
                    path=config.installed[version.name].path,
                )
            )
        listings.reverse()
        return listings

    def list_available(self, selector_text: Optional[str] = None) -> List[ToolchainListing]:
        """
        Catalog toolchains for this host, newest first (read-only, no lock).

        Stable releases are listed unless a snapshot selector is given.
        """
        config = self.load_config()
        selector = parse_selector(selector_text) if selector_text else None

        listings = []
        for entry in self._catalog_entries(config.platform, selector):
            if selector is not None and not selector.matches(entry.version):
                continue
            installed = config.get(entry.version)
            listings.append(
                ToolchainListing(
                    version=entry.version,
                    installed=installed is not None,
                    in_use=config.in_use == entry.version,
                    path=installed.path if installed else None,
                )
            )
        return listings

    # ------------------------------------------------------------------
    # Init and repair
    # ------------------------------------------------------------------

    def _profile_target(self) -> Tuple[Path, str]:
        """(profile file, line sourcing the env script) for the user's shell."""
        shell = Path(self.platform.get_shell()).name
        home = Path.home()

        if shell == "fish":
            config_home = Path(os.environ.get("XDG_CONFIG_HOME") or home / ".config")
            return (
                config_home / "fish" / "conf.d" / "swiftvm.fish",
                f"source {shlex.quote(str(self.paths.env_fish))}",
            )

        line = f". {shlex.quote(str(self.paths.env_sh))}"
        if shell == "zsh":
            return home / ".zprofile", line

        for name in (".bash_profile", ".bash_login", ".profile"):
            if (home / name).exists():
                return home / name, line
        return home / ".profile", line

    def _update_profile(self) -> Optional[Path]:
        profile, line = self._profile_target()
        existing = profile.read_text(encoding="utf-8") if profile.exists() else ""
        if line in existing.splitlines():
            logger.debug(f"{profile} already sources the swiftvm environment")
            return None

        separator = "" if not existing or existing.endswith("\n") else "\n"
        atomic_write(profile, f"{existing}{separator}\n# Added by swiftvm\n{line}\n")
        logger.info(f"Updated {profile} to load the swiftvm environment")
        return profile

    def _clear_store(self) -> List[Path]:
        """
        Remove every toolchain and pending marker left by a previous setup.

        The caller must hold the config lock.
        """
        directories = {Path(self.paths.toolchains_dir)}
        try:
            directories.add(Path(self.store.load().toolchains_dir))
        except CorruptConfigError as e:
            logger.debug(f"Previous config unreadable, clearing default store only: {e}")

        remove_symlink(self.paths.active_link)

        removed = []
        for directory in sorted(directories):
            if not directory.is_dir():
                continue
            for entry in sorted(directory.iterdir()):
                if entry.is_symlink() or not entry.is_dir():
                    continue
                if self.platform.version_from_dir_name(entry.name) is None:
                    continue
                safe_rmtree(entry, require_prefix=directory)
                removed.append(entry)
                logger.info(f"Removed previously installed toolchain {entry}")

        if self.paths.pending_dir.is_dir():
            for marker in self.paths.pending_dir.glob("*.json"):
                marker.unlink()
        return removed

    def init(self, options: InitOptions) -> InitResult:
        """
        Set up swiftvm for the current user.

        With overwrite, toolchains installed by the previous setup are
        removed before the fresh config is written.

        Raises:
            AlreadyInitializedError: If a config exists and overwrite is off
            UnsupportedPlatformError: If the host is not supported
        """
        self.paths.ensure()
        descriptor = self.platform.detect_current_platform(options.platform_hint)
        logger.info(f"Detected platform: {descriptor}")

        config = Config(
            home_dir=self.paths.home_dir,
            bin_dir=self.paths.bin_dir,
            toolchains_dir=self.paths.toolchains_dir,
            platform=descriptor,
        )
        with self._lock():
            if options.overwrite and self.store.exists():
                self._clear_store()
            self.store.create(config, overwrite=options.overwrite)
            self.artifact.write(config)

        profile = None
        if not options.no_modify_profile:
            profile = self._update_profile()

        install = None
        if not options.skip_install:
            install = self.resolve_and_install(
                "latest", activate=True, verify=options.verify
            )

        return InitResult(
            config_path=self.paths.config_file,
            platform=descriptor,
            profile_file=profile,
            install=install,
        )

    def repair(self) -> RepairReport:
        """Reconcile the store, pending markers and the config."""
        with self._lock():
            return run_repair(self.store, self.paths, self.platform, self.artifact)


__all__ = [
    "InitOptions",
    "InitResult",
    "InstallAttempt",
    "InstallResult",
    "InstallState",
    "ManagerContext",
    "ToolchainListing",
    "ToolchainManager",
    "UpdatePlan",
    "UseResult",
    "split_run_arguments",
]
