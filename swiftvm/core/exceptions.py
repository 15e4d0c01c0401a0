"""
Centralized exception hierarchy for swiftvm.

Every error raised by the engine derives from SwiftvmError and belongs to one
of five categories (input, network, integrity, host environment, state). The
CLI maps the category to an exit status via ``exit_code``.
"""

from pathlib import Path
from typing import Optional, Union


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INPUT_ERROR = 2
EXIT_UNSUPPORTED_PLATFORM = 3
EXIT_ABORTED = 130


# ============================================================================
# Base Exceptions
# ============================================================================


class SwiftvmError(Exception):
    """Base exception for all swiftvm errors."""

    exit_code = EXIT_ERROR

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class UserAbortedError(SwiftvmError):
    """Raised when the user declines a confirmation prompt."""

    exit_code = EXIT_ABORTED


# ============================================================================
# Input Errors
# ============================================================================


class InputError(SwiftvmError):
    """Bad user input; reported immediately, never retried."""

    exit_code = EXIT_INPUT_ERROR


class InvalidSelectorSyntax(InputError):
    """Raised when a toolchain selector string cannot be parsed."""

    def __init__(self, text: str):
        self.text = text
        super().__init__(
            f"Invalid toolchain selector: '{text}'",
            hint="Valid selectors look like: latest, 5, 5.10, 5.10.1, "
            "main-snapshot, 5.10-snapshot, 5.10-snapshot-2024-01-01",
        )


class InvalidVersionError(InputError):
    """Raised when a toolchain version string cannot be parsed."""

    pass


class NoMatchingVersion(InputError):
    """Raised when a selector resolves to no version."""

    def __init__(self, selector: str, where: str = "the catalog"):
        self.selector = selector
        super().__init__(f"No toolchain matching '{selector}' found in {where}")


class ToolchainNotInstalledError(InputError):
    """Raised when an operation targets a version that is not installed."""

    def __init__(self, version: str):
        self.version = version
        super().__init__(
            f"Toolchain {version} is not installed",
            hint=f"Run 'swiftvm install {version}' first",
        )


class VersionFileError(InputError):
    """Raised when a .swift-version file cannot select a toolchain."""

    def __init__(self, path: Path, problem: str, hint: Optional[str] = None):
        self.path = path
        super().__init__(f"The swift version file {path} {problem}", hint=hint)


class IncomparableVersionsError(InputError, TypeError):
    """Raised when ordering is requested across kinds or snapshot branches."""

    pass


# ============================================================================
# Network Errors
# ============================================================================


class NetworkError(SwiftvmError):
    """Timeouts and connection failures, surfaced after retries."""

    pass


class DownloadError(NetworkError):
    """Raised when a download fails after all retry attempts."""

    pass


class CatalogNetworkError(NetworkError):
    """Raised when the release catalog cannot be fetched."""

    pass


class CatalogParseError(SwiftvmError):
    """Raised when the release catalog response is not understood."""

    pass


# ============================================================================
# Integrity Errors
# ============================================================================


class IntegrityError(SwiftvmError):
    """Checksum or signature failure; always fatal."""

    pass


class ChecksumMismatch(IntegrityError):
    """Raised when a downloaded file does not match its expected checksum."""

    def __init__(self, file_name: str, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {file_name}: expected {expected}, got {actual}"
        )


class SignatureInvalid(IntegrityError):
    """Raised when a detached signature does not verify with any trusted key."""

    pass


# ============================================================================
# Host Environment Errors
# ============================================================================


class HostEnvironmentError(SwiftvmError):
    """The host cannot support the requested operation."""

    pass


class UnsupportedPlatformError(HostEnvironmentError):
    """Raised when the running host is not a supported platform."""

    exit_code = EXIT_UNSUPPORTED_PLATFORM


class InsufficientDiskSpace(HostEnvironmentError):
    """Raised when the pre-flight free space check fails."""

    def __init__(self, path: Path, required: int, available: int):
        self.path = path
        self.required = required
        self.available = available
        super().__init__(
            f"Not enough free space in {path}: need {required / 1024 / 1024:.1f} MB, "
            f"have {available / 1024 / 1024:.1f} MB",
            hint="Free up disk space or point SWIFTVM_TOOLCHAINS_DIR elsewhere",
        )


class MissingDependencyError(HostEnvironmentError):
    """Raised when a required system tool is not available."""

    pass


class SpawnFailed(HostEnvironmentError):
    """Raised when an external program cannot be started."""

    def __init__(self, executable: str, reason: str):
        self.executable = executable
        super().__init__(f"Failed to run '{executable}': {reason}")


class ExtractionFailed(HostEnvironmentError):
    """Raised when a toolchain archive cannot be unpacked."""

    pass


class InsecureArchiveError(ExtractionFailed):
    """Archive contains insecure paths (directory traversal attempt)."""

    pass


class FilesystemError(HostEnvironmentError):
    """A filesystem operation failed (permissions, missing paths)."""

    pass


# ============================================================================
# State Errors
# ============================================================================


class StateError(SwiftvmError):
    """Persisted state problem; recovery is left to repair or the user."""

    def __init__(
        self,
        message: str,
        path: Optional[Union[str, Path]] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message, hint=hint)
        self.path = Path(path) if path is not None else None


class LockContentionError(StateError):
    """Raised when the config lock cannot be acquired."""

    pass


class ConfigNotFoundError(StateError):
    """Raised when no config exists yet."""

    pass


class CorruptConfigError(StateError):
    """Raised when the config file cannot be parsed."""

    pass


class ConfigInvariantError(StateError):
    """Raised when a config mutation would violate an invariant."""

    pass


class PersistFailedError(StateError):
    """Raised when the config cannot be written."""

    pass


class OrphanedToolchainError(StateError):
    """Raised when a toolchain directory exists without a config entry."""

    pass


class AlreadyInitializedError(StateError):
    """Raised when init finds an existing config and overwrite is off."""

    pass


class SettingsError(StateError):
    """Raised when settings.yaml is invalid."""

    pass


class InvalidStateTransition(StateError):
    """Raised when an install attempt is moved to a state it cannot reach."""

    pass
