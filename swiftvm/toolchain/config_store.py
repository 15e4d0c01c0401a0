"""
Persistent swiftvm configuration.

The config records which toolchains are installed, which one is active, the
resolved directories and the detected platform. It is stored as JSON in
``<home>/config.json`` and always replaced atomically, so readers never take
the lock: they see either the previous or the next complete file.

Writers go through ConfigStore.mutate(), which holds the config lock while
re-reading, transforming, validating and persisting.

Example:
    >>> store = ConfigStore(paths.config_file, lock_manager)
    >>> config = store.load()
    >>> store.mutate(lambda c: c.with_in_use(StableRelease(5, 10, 0)))
"""

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from swiftvm.core.exceptions import (
    AlreadyInitializedError,
    ConfigInvariantError,
    ConfigNotFoundError,
    CorruptConfigError,
    InvalidVersionError,
    PersistFailedError,
)
from swiftvm.core.filesystem import atomic_write
from swiftvm.core.locking import LockManager
from swiftvm.core.version import ToolchainVersion
from swiftvm.platforms.base import PlatformDescriptor

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def utc_timestamp() -> str:
    """Current time as ISO-8601 UTC."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


@dataclass(frozen=True)
class InstalledToolchain:
    """
    One installed toolchain.

    Attributes:
        version: Installed version
        path: Toolchain directory in the store
        installed_at: ISO-8601 UTC installation time
    """

    version: ToolchainVersion
    path: Path
    installed_at: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "version": self.version.name,
            "path": str(self.path),
            "installed_at": self.installed_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InstalledToolchain":
        return cls(
            version=ToolchainVersion.parse(data["version"]),
            path=Path(data["path"]),
            installed_at=str(data.get("installed_at", "")),
        )


@dataclass(frozen=True)
class Config:
    """
    Snapshot of the persisted configuration.

    Instances are immutable; the with_*/without helpers return updated copies
    for use in ConfigStore.mutate() transforms.
    """

    home_dir: Path
    bin_dir: Path
    toolchains_dir: Path
    platform: PlatformDescriptor
    installed: Dict[str, InstalledToolchain] = field(default_factory=dict)
    in_use: Optional[ToolchainVersion] = None
    schema_version: int = SCHEMA_VERSION

    def is_installed(self, version: ToolchainVersion) -> bool:
        return version.name in self.installed

    def get(self, version: ToolchainVersion) -> Optional[InstalledToolchain]:
        return self.installed.get(version.name)

    def installed_versions(self):
        """Installed versions in display order."""
        return sorted(
            (entry.version for entry in self.installed.values()),
            key=lambda v: v.sort_key(),
        )

    def with_installed(self, entry: InstalledToolchain) -> "Config":
        installed = dict(self.installed)
        installed[entry.version.name] = entry
        return replace(self, installed=installed)

    def without(self, version: ToolchainVersion) -> "Config":
        installed = {k: v for k, v in self.installed.items() if k != version.name}
        in_use = self.in_use
        if in_use is not None and in_use.name == version.name:
            in_use = None
        return replace(self, installed=installed, in_use=in_use)

    def with_in_use(self, version: Optional[ToolchainVersion]) -> "Config":
        return replace(self, in_use=version)

    def validate(self) -> None:
        """
        Check config invariants.

        Raises:
            ConfigInvariantError: If the active version is not installed, or an
                installed entry is keyed by a name other than its version's
        """
        for key, entry in self.installed.items():
            if key != entry.version.name:
                raise ConfigInvariantError(
                    f"Installed entry '{key}' records version {entry.version.name}"
                )

        paths = [entry.path for entry in self.installed.values()]
        if len(set(paths)) != len(paths):
            raise ConfigInvariantError("Two installed toolchains share a directory")

        if self.in_use is not None and self.in_use.name not in self.installed:
            raise ConfigInvariantError(
                f"Active toolchain {self.in_use.name} is not installed"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "home_dir": str(self.home_dir),
            "bin_dir": str(self.bin_dir),
            "toolchains_dir": str(self.toolchains_dir),
            "platform": self.platform.to_dict(),
            "in_use": self.in_use.name if self.in_use else None,
            "installed": {
                name: entry.to_dict() for name, entry in sorted(self.installed.items())
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """
        Raises:
            CorruptConfigError: If data doesn't describe a valid config
        """
        try:
            schema_version = int(data.get("schema_version", SCHEMA_VERSION))
            if schema_version > SCHEMA_VERSION:
                raise CorruptConfigError(
                    f"Config schema version {schema_version} is newer than "
                    f"supported version {SCHEMA_VERSION}",
                    hint="Upgrade swiftvm",
                )

            installed = {
                name: InstalledToolchain.from_dict(entry)
                for name, entry in (data.get("installed") or {}).items()
            }
            in_use = data.get("in_use")
            return cls(
                home_dir=Path(data["home_dir"]),
                bin_dir=Path(data["bin_dir"]),
                toolchains_dir=Path(data["toolchains_dir"]),
                platform=PlatformDescriptor.from_dict(data["platform"]),
                installed=installed,
                in_use=ToolchainVersion.parse(in_use) if in_use else None,
                schema_version=schema_version,
            )
        except (KeyError, TypeError, ValueError, AttributeError, InvalidVersionError) as e:
            raise CorruptConfigError(f"Invalid config contents: {e}") from e


class ConfigStore:
    """
    Loads and atomically persists the Config.

    Attributes:
        path: Location of config.json
        lock_manager: Lock used to serialize writers
    """

    def __init__(self, path: Path, lock_manager: LockManager):
        self.path = Path(path)
        self.lock_manager = lock_manager

    def exists(self) -> bool:
        return self.path.exists()

    def _read(self) -> Dict[str, Any]:
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def load(self) -> Config:
        """
        Read the config from disk.

        Raises:
            ConfigNotFoundError: If swiftvm has not been initialized
            CorruptConfigError: If the file cannot be parsed
        """
        try:
            try:
                data = self._read()
            except json.JSONDecodeError:
                # A reader racing a non-atomic external edit; read once more
                logger.debug(f"Config at {self.path} unreadable, retrying once")
                data = self._read()
        except FileNotFoundError:
            raise ConfigNotFoundError(
                f"No swiftvm config found at {self.path}",
                path=self.path,
                hint="Run 'swiftvm init' first",
            ) from None
        except json.JSONDecodeError as e:
            raise CorruptConfigError(
                f"Config file {self.path} is not valid JSON: {e}",
                path=self.path,
                hint="Fix or remove the file and run 'swiftvm init --overwrite'",
            ) from e
        except OSError as e:
            raise CorruptConfigError(
                f"Cannot read config file {self.path}: {e}", path=self.path
            ) from e

        if not isinstance(data, dict):
            raise CorruptConfigError(
                f"Config file {self.path} does not contain an object", path=self.path
            )

        try:
            return Config.from_dict(data)
        except CorruptConfigError as e:
            raise CorruptConfigError(
                f"{e} ({self.path})", path=self.path, hint=e.hint
            ) from e

    def _persist(self, config: Config) -> None:
        content = json.dumps(config.to_dict(), indent=2) + "\n"
        try:
            atomic_write(self.path, content, fsync=True)
        except OSError as e:
            raise PersistFailedError(
                f"Failed to write config {self.path}: {e}", path=self.path
            ) from e
        logger.debug(f"Saved config to {self.path}")

    def create(self, config: Config, overwrite: bool = False) -> Config:
        """
        Write a fresh config (init only).

        Raises:
            AlreadyInitializedError: If a config exists and overwrite is False
        """
        with self.lock_manager.config_lock():
            if self.exists() and not overwrite:
                raise AlreadyInitializedError(
                    f"swiftvm is already initialized at {self.path}",
                    path=self.path,
                    hint="Pass --overwrite to start over",
                )
            config.validate()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._persist(config)
        logger.info(f"Created config at {self.path}")
        return config

    def mutate(self, transform: Callable[[Config], Config]) -> Config:
        """
        Apply transform to the current config and persist the result.

        The config is re-read under the lock, so concurrent writers never
        lose each other's updates.

        Raises:
            ConfigInvariantError: If the transformed config is invalid
            PersistFailedError: If it cannot be written
        """
        with self.lock_manager.config_lock():
            current = self.load()
            updated = transform(current)
            updated.validate()
            if updated != current:
                self._persist(updated)
            return updated


__all__ = [
    "Config",
    "ConfigStore",
    "InstalledToolchain",
    "SCHEMA_VERSION",
    "utc_timestamp",
]
