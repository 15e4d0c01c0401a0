"""
Crash recovery for the toolchain store.

Mutating operations leave a pending marker in ``<home>/pending`` while the
store and the config disagree. The repair pass, run under the config lock at
the start of every mutating operation, reconciles them:

- stale ``.staging-``/``.removing-`` siblings are removed (no other process
  can be using them while the lock is held)
- a toolchain extracted for a pending install is adopted into the config
- a pending uninstall whose directory is gone is completed
- directories with no config entry and no marker are reported, never deleted
- config entries whose directory is missing are reported, never dropped
- unreadable markers are reported and removed
- the activation artifact is regenerated from the config
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from swiftvm.core.exceptions import CorruptConfigError, InvalidVersionError
from swiftvm.core.filesystem import atomic_write, safe_rmtree
from swiftvm.core.version import ToolchainVersion
from swiftvm.toolchain.config_store import Config, InstalledToolchain, utc_timestamp

logger = logging.getLogger(__name__)

STALE_TAGS = (".staging-", ".removing-", ".link-")


@dataclass
class PendingMarker:
    """
    Record of a mutating operation in flight.

    Attributes:
        operation: 'install' or 'uninstall'
        version: Toolchain being installed or removed
        path: Toolchain directory in the store
    """

    operation: str
    version: ToolchainVersion
    path: Path

    @staticmethod
    def marker_path(pending_dir: Path, version: ToolchainVersion) -> Path:
        return pending_dir / f"{version.name}.json"

    def write(self, pending_dir: Path) -> Path:
        marker = self.marker_path(pending_dir, self.version)
        content = {
            "operation": self.operation,
            "version": self.version.name,
            "path": str(self.path),
            "created_at": utc_timestamp(),
        }
        atomic_write(marker, json.dumps(content, indent=2) + "\n")
        logger.debug(f"Wrote pending {self.operation} marker for {self.version.name}")
        return marker

    def remove(self, pending_dir: Path) -> None:
        self.marker_path(pending_dir, self.version).unlink(missing_ok=True)

    @classmethod
    def load(cls, marker: Path) -> "PendingMarker":
        """
        Raises:
            CorruptConfigError: If the marker cannot be read
        """
        try:
            data = json.loads(marker.read_text(encoding="utf-8"))
            operation = data["operation"]
            if operation not in ("install", "uninstall"):
                raise ValueError(f"unknown operation '{operation}'")
            return cls(
                operation=operation,
                version=ToolchainVersion.parse(data["version"]),
                path=Path(data["path"]),
            )
        except (OSError, ValueError, KeyError, TypeError, InvalidVersionError) as e:
            raise CorruptConfigError(
                f"Unreadable pending marker {marker}: {e}", path=marker
            ) from e


def load_pending(
    pending_dir: Path, unreadable: Optional[List[Path]] = None
) -> List[PendingMarker]:
    """
    All readable pending markers.

    Unreadable markers are logged and skipped; their paths are appended to
    unreadable when it is given.
    """
    if not pending_dir.is_dir():
        return []

    markers = []
    for marker in sorted(pending_dir.glob("*.json")):
        try:
            markers.append(PendingMarker.load(marker))
        except CorruptConfigError as e:
            logger.warning(str(e))
            if unreadable is not None:
                unreadable.append(marker)
    return markers


@dataclass
class RepairReport:
    """Outcome of one repair pass."""

    adopted: List[str] = field(default_factory=list)
    completed_uninstalls: List[str] = field(default_factory=list)
    removed_staging: List[Path] = field(default_factory=list)
    orphaned_paths: List[Path] = field(default_factory=list)
    missing_paths: List[Path] = field(default_factory=list)
    unreadable_markers: List[Path] = field(default_factory=list)

    @property
    def has_flagged(self) -> bool:
        """True when something needs the user's attention."""
        return bool(self.orphaned_paths or self.missing_paths or self.unreadable_markers)

    @property
    def changed(self) -> bool:
        return bool(self.adopted or self.completed_uninstalls or self.removed_staging)


def _is_stale_sibling(name: str) -> bool:
    return name.startswith(".") and any(tag in name for tag in STALE_TAGS)


def _remove_stale(directory: Path, report: RepairReport) -> None:
    if not directory.is_dir():
        return

    for entry in directory.iterdir():
        if not _is_stale_sibling(entry.name):
            continue
        if entry.is_symlink() or entry.is_file():
            entry.unlink()
        else:
            safe_rmtree(entry, require_prefix=directory)
        logger.info(f"Removed stale {entry}")
        report.removed_staging.append(entry)


def _remove_stale_downloads(downloads_dir: Path, report: RepairReport) -> None:
    # Partial downloads are kept so the next install can resume them
    if not downloads_dir.is_dir():
        return

    for entry in downloads_dir.iterdir():
        if entry.is_file() and not entry.name.endswith(".part"):
            entry.unlink()
            logger.info(f"Removed stale download {entry}")
            report.removed_staging.append(entry)


def reconcile(
    config: Config,
    markers: List[PendingMarker],
    toolchains_dir: Path,
    platform,
    report: RepairReport,
) -> Config:
    """
    Apply pending markers to config and collect orphans and missing entries.

    Returns:
        The reconciled config (unchanged if nothing needed fixing)
    """
    for marker in markers:
        name = marker.version.name
        present = marker.path.is_dir()

        if marker.operation == "install":
            if present and not config.is_installed(marker.version):
                entry = InstalledToolchain(marker.version, marker.path, utc_timestamp())
                config = config.with_installed(entry)
                report.adopted.append(name)
                logger.info(f"Adopted interrupted install of {name}")
        elif not present and config.is_installed(marker.version):
            config = config.without(marker.version)
            report.completed_uninstalls.append(name)
            logger.info(f"Completed interrupted uninstall of {name}")

    known = {entry.path.absolute() for entry in config.installed.values()}
    if toolchains_dir.is_dir():
        for entry in sorted(toolchains_dir.iterdir()):
            if entry.name.startswith(".") or not entry.is_dir() or entry.is_symlink():
                continue
            if platform.version_from_dir_name(entry.name) is None:
                continue
            if entry.absolute() not in known:
                logger.warning(f"Toolchain directory {entry} is not tracked by swiftvm")
                report.orphaned_paths.append(entry)

    for entry in config.installed.values():
        if not entry.path.is_dir():
            logger.warning(
                f"Toolchain {entry.version.name} is missing its directory {entry.path}"
            )
            report.missing_paths.append(entry.path)

    return config


def run_repair(store, paths, platform, artifact) -> RepairReport:
    """
    Run a full repair pass. The caller must hold the config lock.

    Args:
        store: ConfigStore
        paths: SwiftvmPaths
        platform: Host Platform
        artifact: ActivationArtifact to regenerate

    Returns:
        RepairReport describing what was fixed and what needs attention
    """
    report = RepairReport()
    config = store.load()
    toolchains_dir = Path(config.toolchains_dir)

    _remove_stale(toolchains_dir, report)
    _remove_stale(paths.home_dir, report)
    _remove_stale_downloads(paths.downloads_dir, report)

    markers = load_pending(paths.pending_dir, report.unreadable_markers)
    config = store.mutate(
        lambda current: reconcile(current, markers, toolchains_dir, platform, report)
    )
    for marker in markers:
        marker.remove(paths.pending_dir)
    # The orphan scan above already flags any directory an unreadable marker named
    for marker_file in report.unreadable_markers:
        marker_file.unlink(missing_ok=True)
        logger.info(f"Removed unreadable pending marker {marker_file}")
    artifact.write(config)

    if report.changed or report.has_flagged:
        logger.debug(
            f"Repair: adopted={report.adopted} "
            f"completed_uninstalls={report.completed_uninstalls} "
            f"removed={len(report.removed_staging)} "
            f"orphaned={len(report.orphaned_paths)} missing={len(report.missing_paths)} "
            f"unreadable={len(report.unreadable_markers)}"
        )
    return report


__all__ = [
    "PendingMarker",
    "RepairReport",
    "load_pending",
    "reconcile",
    "run_repair",
]
