"""
Toolchain lifecycle: config persistence, download pipeline, activation,
project selection, crash repair and the engine that ties them together.
"""

from swiftvm.toolchain.activation import ActivationArtifact
from swiftvm.toolchain.config_store import Config, ConfigStore, InstalledToolchain
from swiftvm.toolchain.engine import (
    InitOptions,
    InitResult,
    InstallAttempt,
    InstallResult,
    InstallState,
    ManagerContext,
    ToolchainListing,
    ToolchainManager,
    UpdatePlan,
    UseResult,
)
from swiftvm.toolchain.repair import RepairReport
from swiftvm.toolchain.selection import SelectionSource, ToolchainSelection

__all__ = [
    "ActivationArtifact",
    "Config",
    "ConfigStore",
    "InitOptions",
    "InitResult",
    "InstallAttempt",
    "InstallResult",
    "InstallState",
    "InstalledToolchain",
    "ManagerContext",
    "RepairReport",
    "SelectionSource",
    "ToolchainListing",
    "ToolchainManager",
    "ToolchainSelection",
    "UpdatePlan",
    "UseResult",
]
