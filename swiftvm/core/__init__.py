"""
Core functionality for swiftvm.

This package contains the foundational modules that other components depend
on: the version model, error taxonomy, filesystem helpers, locking, settings,
downloads and integrity checks.
"""

from .exceptions import SwiftvmError
from .version import (
    ToolchainVersion,
    StableRelease,
    Snapshot,
    SnapshotBranch,
    parse_selector,
    resolve,
)
from .directory import SwiftvmPaths, resolve_paths
from .settings import Settings, load_settings
from .locking import LockManager

__all__ = [
    "SwiftvmError",
    "ToolchainVersion",
    "StableRelease",
    "Snapshot",
    "SnapshotBranch",
    "parse_selector",
    "resolve",
    "SwiftvmPaths",
    "resolve_paths",
    "Settings",
    "load_settings",
    "LockManager",
]
