"""
Host platform support.

get_current_platform() returns the Platform implementation for the running
OS. Detection runs once per process.
"""

import functools
import platform as host

from swiftvm.core.exceptions import UnsupportedPlatformError

from .base import Platform, PlatformDescriptor
from .linux import LinuxPlatform
from .macos import MacOSPlatform


@functools.lru_cache(maxsize=1)
def get_current_platform() -> Platform:
    """
    Select the platform implementation for this host.

    Raises:
        UnsupportedPlatformError: On hosts other than Linux and macOS
    """
    system = host.system().lower()

    if system == "linux":
        return LinuxPlatform()
    elif system == "darwin":
        return MacOSPlatform()

    raise UnsupportedPlatformError(
        f"Unsupported operating system: {host.system()}",
        hint="swiftvm supports Linux and macOS",
    )


def clear_platform_cache() -> None:
    """Forget the cached platform (for tests)."""
    get_current_platform.cache_clear()


__all__ = [
    "Platform",
    "PlatformDescriptor",
    "LinuxPlatform",
    "MacOSPlatform",
    "get_current_platform",
    "clear_platform_cache",
]
