"""
Project-level toolchain selection through ``.swift-version`` files.

A ``.swift-version`` file in the working directory or any of its ancestors
holds a selector (e.g. ``5.10`` or ``main-snapshot``). When one is found it
picks the newest installed toolchain matching that selector; otherwise the
global default (the config's ``in_use``) applies.

Example:
    >>> selection = select_toolchain(config, Path.cwd())
    >>> selection.raise_for_error()
    >>> print(selection.version, selection.describe())
    5.10.1 (/work/project/.swift-version)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

from swiftvm.core.exceptions import (
    InvalidSelectorSyntax,
    NoMatchingVersion,
    VersionFileError,
)
from swiftvm.core.filesystem import atomic_write
from swiftvm.core.version import Selector, ToolchainVersion, parse_selector, resolve
from swiftvm.toolchain.config_store import Config

logger = logging.getLogger(__name__)

VERSION_FILE_NAME = ".swift-version"


class SelectionSource(Enum):
    """Where a toolchain selection came from."""

    GLOBAL_DEFAULT = "default"
    VERSION_FILE = "version-file"


@dataclass(frozen=True)
class ToolchainSelection:
    """
    Result of select_toolchain().

    Attributes:
        version: Selected installed toolchain, None if nothing is selected
        source: Global default or a version file
        version_file: The version file consulted, if any
        error: Why the version file selected nothing, if it failed
    """

    version: Optional[ToolchainVersion]
    source: SelectionSource
    version_file: Optional[Path] = None
    error: Optional[VersionFileError] = None

    @property
    def from_version_file(self) -> bool:
        return self.source == SelectionSource.VERSION_FILE

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def describe(self) -> str:
        if self.from_version_file:
            return f"({self.version_file})"
        return "(default)"


def _ancestors(start: Path) -> Iterator[Path]:
    current = Path(start).absolute()
    yield current
    yield from current.parents


def find_version_file(start: Path) -> Optional[Path]:
    """Nearest .swift-version file at or above start."""
    for directory in _ancestors(start):
        candidate = directory / VERSION_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def find_new_version_file(start: Path) -> Optional[Path]:
    """Where a new .swift-version belongs: the root of the enclosing git checkout."""
    for directory in _ancestors(start):
        if (directory / ".git").exists():
            return directory / VERSION_FILE_NAME
    return None


def read_version_file(path: Path) -> Selector:
    """
    Parse the selector stored in a version file.

    Raises:
        VersionFileError: If the file is unreadable, empty or malformed
    """
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise VersionFileError(path, f"could not be read: {e}") from e

    text = content.replace("\r", "").replace("\n", "").strip()
    if not text:
        raise VersionFileError(path, "is empty")

    try:
        return parse_selector(text)
    except InvalidSelectorSyntax as e:
        raise VersionFileError(path, f"is malformed: {e}", hint=e.hint) from e


def write_version_file(path: Path, version: ToolchainVersion) -> None:
    atomic_write(path, f"{version.name}\n")
    logger.info(f"Wrote {version.name} to {path}")


def select_toolchain(
    config: Config, cwd: Optional[Path] = None, global_default: bool = False
) -> ToolchainSelection:
    """
    Work out which installed toolchain applies in cwd.

    A version file that exists but cannot select an installed toolchain is
    returned with error set rather than raised, so callers that overwrite
    the file can ignore the problem.

    Args:
        config: Current config
        cwd: Directory to start the version file search from (default: cwd)
        global_default: Ignore version files

    Returns:
        ToolchainSelection
    """
    if not global_default:
        version_file = find_version_file(cwd if cwd is not None else Path.cwd())
        if version_file is not None:
            return _select_from_file(config, version_file)

    return ToolchainSelection(config.in_use, SelectionSource.GLOBAL_DEFAULT)


def _select_from_file(config: Config, version_file: Path) -> ToolchainSelection:
    try:
        selector = read_version_file(version_file)
    except VersionFileError as e:
        return ToolchainSelection(None, SelectionSource.VERSION_FILE, version_file, e)

    try:
        version = resolve(selector, config.installed_versions(), "installed toolchains")
    except NoMatchingVersion:
        error = VersionFileError(
            version_file,
            f"selects '{selector}', which matches no installed toolchain",
            hint=f"Install it with 'swiftvm install {selector}'",
        )
        return ToolchainSelection(None, SelectionSource.VERSION_FILE, version_file, error)

    logger.debug(f"{version_file} selects {version.name}")
    return ToolchainSelection(version, SelectionSource.VERSION_FILE, version_file)


__all__ = [
    "SelectionSource",
    "ToolchainSelection",
    "VERSION_FILE_NAME",
    "find_new_version_file",
    "find_version_file",
    "read_version_file",
    "select_toolchain",
    "write_version_file",
]
