"""
Toolchain version and selector model.

Pure value types, no I/O. A toolchain version is either a stable release
(``5.10.1``) or a dated development snapshot on the main branch
(``main-snapshot-2024-05-01``) or on a release branch
(``5.10-snapshot-2024-05-01``). Selectors describe which version a user wants
and are resolved against a catalog of versions.

Ordering is only defined within a kind: stable releases compare by
major/minor/patch, snapshots compare by date within the same branch. Any
other comparison raises IncomparableVersionsError.

Usage:
    from swiftvm.core.version import parse_selector, resolve

    selector = parse_selector("5.10")
    version = resolve(selector, catalog_versions)
    print(version.name)
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from swiftvm.core.exceptions import (
    IncomparableVersionsError,
    InvalidSelectorSyntax,
    InvalidVersionError,
    NoMatchingVersion,
)

_DATE = r"\d{4}-\d{2}-\d{2}"

_STABLE_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")
_MAIN_SNAPSHOT_RE = re.compile(rf"^main-snapshot-({_DATE})$")
_RELEASE_SNAPSHOT_RE = re.compile(rf"^(\d+)\.(\d+)-snapshot-({_DATE})$")

_STABLE_IDENTIFIER_RE = re.compile(r"^swift-(\d+)\.(\d+)(?:\.(\d+))?-RELEASE$")
_SNAPSHOT_IDENTIFIER_RE = re.compile(
    rf"^swift(?:-(\d+)\.(\d+))?-DEVELOPMENT-SNAPSHOT-({_DATE})(?:-a)?$"
)

_STABLE_SELECTOR_RE = re.compile(r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?$")
_RELEASE_SNAPSHOT_SELECTOR_RE = re.compile(
    rf"^(\d+)\.(\d+)-(?:snapshot|DEVELOPMENT-SNAPSHOT)(?:-({_DATE}))?(?:-a)?$"
)
_MAIN_SNAPSHOT_SELECTOR_RE = re.compile(
    rf"^(?:main-snapshot|swift-DEVELOPMENT-SNAPSHOT)(?:-({_DATE}))?(?:-a)?$"
)


class ToolchainVersion:
    """Base class for fully resolved toolchain versions."""

    __slots__ = ()

    @property
    def name(self) -> str:
        raise NotImplementedError

    @property
    def identifier(self) -> str:
        raise NotImplementedError

    def is_stable(self) -> bool:
        return isinstance(self, StableRelease)

    def is_snapshot(self) -> bool:
        return isinstance(self, Snapshot)

    def sort_key(self) -> tuple:
        """Total order for display purposes only; never used to pick 'latest'."""
        raise NotImplementedError

    def _ordering_key(self, other: "ToolchainVersion"):
        raise NotImplementedError

    def __lt__(self, other):
        if not isinstance(other, ToolchainVersion):
            return NotImplemented
        return self._ordering_key(other) < other._ordering_key(self)

    def __le__(self, other):
        if not isinstance(other, ToolchainVersion):
            return NotImplemented
        return self._ordering_key(other) <= other._ordering_key(self)

    def __gt__(self, other):
        if not isinstance(other, ToolchainVersion):
            return NotImplemented
        return self._ordering_key(other) > other._ordering_key(self)

    def __ge__(self, other):
        if not isinstance(other, ToolchainVersion):
            return NotImplemented
        return self._ordering_key(other) >= other._ordering_key(self)

    def __str__(self) -> str:
        return self.name

    @staticmethod
    def parse(text: str) -> "ToolchainVersion":
        """
        Parse a canonical version name.

        Args:
            text: Version name such as '5.10.1', 'main-snapshot-2024-01-01'
                or '5.10-snapshot-2024-01-01'

        Returns:
            StableRelease or Snapshot

        Raises:
            InvalidVersionError: If text is not a canonical version name
        """
        text = text.strip()

        match = _STABLE_RE.match(text)
        if match:
            major, minor, patch = (int(g) for g in match.groups())
            return StableRelease(major, minor, patch)

        match = _MAIN_SNAPSHOT_RE.match(text)
        if match:
            return Snapshot(SnapshotBranch(), match.group(1))

        match = _RELEASE_SNAPSHOT_RE.match(text)
        if match:
            branch = SnapshotBranch(int(match.group(1)), int(match.group(2)))
            return Snapshot(branch, match.group(3))

        raise InvalidVersionError(f"Invalid toolchain version: '{text}'")

    @staticmethod
    def from_identifier(identifier: str) -> "ToolchainVersion":
        """
        Parse a swift.org download identifier such as 'swift-5.10-RELEASE'.

        Raises:
            InvalidVersionError: If identifier is not recognized
        """
        match = _STABLE_IDENTIFIER_RE.match(identifier)
        if match:
            return StableRelease(
                int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)
            )

        match = _SNAPSHOT_IDENTIFIER_RE.match(identifier)
        if match:
            if match.group(1) is not None:
                branch = SnapshotBranch(int(match.group(1)), int(match.group(2)))
            else:
                branch = SnapshotBranch()
            return Snapshot(branch, match.group(3))

        raise InvalidVersionError(f"Invalid toolchain identifier: '{identifier}'")


@dataclass(frozen=True)
class StableRelease(ToolchainVersion):
    """A stable release such as 5.10.1."""

    major: int
    minor: int
    patch: int

    @property
    def name(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    @property
    def identifier(self) -> str:
        # swift.org drops a zero patch component from release tags
        if self.patch == 0:
            return f"swift-{self.major}.{self.minor}-RELEASE"
        return f"swift-{self.name}-RELEASE"

    def sort_key(self) -> tuple:
        return (0, self.major, self.minor, self.patch, "")

    def _ordering_key(self, other: ToolchainVersion):
        if not isinstance(other, StableRelease):
            raise IncomparableVersionsError(
                f"Cannot order stable release {self.name} against snapshot {other.name}"
            )
        return (self.major, self.minor, self.patch)


@dataclass(frozen=True)
class SnapshotBranch:
    """Snapshot branch; major/minor of None means the main branch."""

    major: Optional[int] = None
    minor: Optional[int] = None

    @property
    def is_main(self) -> bool:
        return self.major is None

    @property
    def name(self) -> str:
        if self.is_main:
            return "main"
        return f"{self.major}.{self.minor}"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Snapshot(ToolchainVersion):
    """A dated development snapshot on a branch."""

    branch: SnapshotBranch
    date: str

    @property
    def name(self) -> str:
        if self.branch.is_main:
            return f"main-snapshot-{self.date}"
        return f"{self.branch.name}-snapshot-{self.date}"

    @property
    def identifier(self) -> str:
        if self.branch.is_main:
            return f"swift-DEVELOPMENT-SNAPSHOT-{self.date}-a"
        return f"swift-{self.branch.name}-DEVELOPMENT-SNAPSHOT-{self.date}-a"

    def sort_key(self) -> tuple:
        if self.branch.is_main:
            return (2, 0, 0, 0, self.date)
        return (1, self.branch.major, self.branch.minor, 0, self.date)

    def _ordering_key(self, other: ToolchainVersion):
        if not isinstance(other, Snapshot):
            raise IncomparableVersionsError(
                f"Cannot order snapshot {self.name} against stable release {other.name}"
            )
        if other.branch != self.branch:
            raise IncomparableVersionsError(
                f"Cannot order snapshots from different branches: "
                f"{self.name} and {other.name}"
            )
        return self.date


# ============================================================================
# Selectors
# ============================================================================


class Selector:
    """Base class for toolchain selectors."""

    def matches(self, version: ToolchainVersion) -> bool:
        raise NotImplementedError

    def snapshot_branch(self) -> Optional[SnapshotBranch]:
        """Snapshot branch this selector targets, or None for stable selectors."""
        return None

    def is_snapshot_selector(self) -> bool:
        return self.snapshot_branch() is not None


@dataclass(frozen=True)
class Latest(Selector):
    """The newest stable release."""

    def matches(self, version: ToolchainVersion) -> bool:
        return isinstance(version, StableRelease)

    def __str__(self) -> str:
        return "latest"


@dataclass(frozen=True)
class LatestMinor(Selector):
    """The newest stable release within a major version."""

    major: int

    def matches(self, version: ToolchainVersion) -> bool:
        return isinstance(version, StableRelease) and version.major == self.major

    def __str__(self) -> str:
        return f"{self.major}"


@dataclass(frozen=True)
class LatestPatch(Selector):
    """The newest stable release within a major.minor series."""

    major: int
    minor: int

    def matches(self, version: ToolchainVersion) -> bool:
        return (
            isinstance(version, StableRelease)
            and version.major == self.major
            and version.minor == self.minor
        )

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class Exact(Selector):
    """Exactly one version."""

    version: ToolchainVersion

    def matches(self, version: ToolchainVersion) -> bool:
        return version == self.version

    def snapshot_branch(self) -> Optional[SnapshotBranch]:
        if isinstance(self.version, Snapshot):
            return self.version.branch
        return None

    def __str__(self) -> str:
        return self.version.name


@dataclass(frozen=True)
class LatestMainSnapshot(Selector):
    """The newest snapshot on the main branch."""

    def matches(self, version: ToolchainVersion) -> bool:
        return isinstance(version, Snapshot) and version.branch.is_main

    def snapshot_branch(self) -> Optional[SnapshotBranch]:
        return SnapshotBranch()

    def __str__(self) -> str:
        return "main-snapshot"


@dataclass(frozen=True)
class LatestReleaseSnapshot(Selector):
    """The newest snapshot on a release branch."""

    major: int
    minor: int

    def matches(self, version: ToolchainVersion) -> bool:
        return isinstance(version, Snapshot) and version.branch == SnapshotBranch(
            self.major, self.minor
        )

    def snapshot_branch(self) -> Optional[SnapshotBranch]:
        return SnapshotBranch(self.major, self.minor)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}-snapshot"


def parse_selector(text: str) -> Selector:
    """
    Parse a user-supplied selector string.

    Accepted forms:
        latest, a, a.b, a.b.c,
        a.b-snapshot[-YYYY-MM-DD], a.b-DEVELOPMENT-SNAPSHOT[-YYYY-MM-DD][-a],
        main-snapshot[-YYYY-MM-DD], swift-DEVELOPMENT-SNAPSHOT[-YYYY-MM-DD][-a]

    Raises:
        InvalidSelectorSyntax: If text matches none of the forms

    Example:
        >>> parse_selector("5.10")
        LatestPatch(major=5, minor=10)
    """
    text = text.strip()

    if text == "latest":
        return Latest()

    match = _STABLE_SELECTOR_RE.match(text)
    if match:
        major = int(match.group(1))
        if match.group(2) is None:
            return LatestMinor(major)
        minor = int(match.group(2))
        if match.group(3) is None:
            return LatestPatch(major, minor)
        return Exact(StableRelease(major, minor, int(match.group(3))))

    match = _RELEASE_SNAPSHOT_SELECTOR_RE.match(text)
    if match:
        major, minor, date = int(match.group(1)), int(match.group(2)), match.group(3)
        if date is None:
            return LatestReleaseSnapshot(major, minor)
        return Exact(Snapshot(SnapshotBranch(major, minor), date))

    match = _MAIN_SNAPSHOT_SELECTOR_RE.match(text)
    if match:
        date = match.group(1)
        if date is None:
            return LatestMainSnapshot()
        return Exact(Snapshot(SnapshotBranch(), date))

    raise InvalidSelectorSyntax(text)


def resolve(
    selector: Selector,
    catalog: Iterable[ToolchainVersion],
    where: str = "the catalog",
) -> ToolchainVersion:
    """
    Resolve a selector against a sequence of versions.

    Every selector only matches versions of a single kind (and a single
    snapshot branch), so the maximum is always well defined.

    Raises:
        NoMatchingVersion: If no version in catalog matches
    """
    candidates = [version for version in catalog if selector.matches(version)]
    if not candidates:
        raise NoMatchingVersion(str(selector), where)

    if isinstance(selector, Exact):
        return selector.version

    return max(candidates)


__all__ = [
    "ToolchainVersion",
    "StableRelease",
    "Snapshot",
    "SnapshotBranch",
    "Selector",
    "Latest",
    "LatestMinor",
    "LatestPatch",
    "Exact",
    "LatestMainSnapshot",
    "LatestReleaseSnapshot",
    "parse_selector",
    "resolve",
]
