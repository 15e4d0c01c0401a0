"""
Concurrent access control for swiftvm.

A single advisory file lock serializes every mutating operation (install,
uninstall, activate, repair) across swiftvm processes. Read-only operations
never take the lock; they rely on the config file being replaced atomically.

Features:
- Cross-process locking via the `filelock` library
- Bounded wait per attempt and a bounded number of attempts
- Re-entrant within one process, so an operation holding the lock can call
  helpers that acquire it again

Usage:
    from swiftvm.core.locking import LockManager

    lock_manager = LockManager(paths.lock_dir)
    with lock_manager.config_lock():
        # Safely modify config.json and the toolchain store
        pass
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Optional

from filelock import FileLock, Timeout as LockTimeout

from swiftvm.core.exceptions import LockContentionError

logger = logging.getLogger(__name__)

CONFIG_LOCK_NAME = "config.lock"


class LockManager:
    """
    Manages swiftvm's advisory locks.

    Attributes:
        lock_dir: Directory where lock files are stored
        timeout: Seconds to wait per acquisition attempt
        retries: Number of acquisition attempts before giving up
    """

    def __init__(self, lock_dir: Path, timeout: float = 10, retries: int = 3):
        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout
        self.retries = max(1, retries)
        self._locks: Dict[str, FileLock] = {}

    def _get_lock(self, name: str) -> FileLock:
        # One FileLock instance per file keeps nested acquisitions re-entrant
        if name not in self._locks:
            self._locks[name] = FileLock(self.lock_dir / name)
        return self._locks[name]

    @property
    def config_lock_path(self) -> Path:
        return self.lock_dir / CONFIG_LOCK_NAME

    def is_config_locked(self) -> bool:
        """True if this process currently holds the config lock."""
        return self._get_lock(CONFIG_LOCK_NAME).is_locked

    @contextmanager
    def config_lock(
        self, timeout: Optional[float] = None, retries: Optional[int] = None
    ):
        """
        Acquire the config lock for safe modifications.

        Args:
            timeout: Seconds to wait per attempt (default: manager timeout)
            retries: Number of attempts (default: manager retries)

        Yields:
            None

        Raises:
            LockContentionError: If the lock can't be acquired in any attempt

        Example:
            >>> with lock_manager.config_lock():
            ...     store.mutate(add_toolchain)
        """
        timeout = self.timeout if timeout is None else timeout
        attempts = self.retries if retries is None else max(1, retries)
        lock = self._get_lock(CONFIG_LOCK_NAME)

        for attempt in range(attempts):
            try:
                lock.acquire(timeout=timeout)
                break
            except LockTimeout:
                if attempt == attempts - 1:
                    logger.error(
                        f"Could not acquire config lock after {attempts} attempts "
                        f"of {timeout}s. Another swiftvm process may be running."
                    )
                    raise LockContentionError(
                        f"Could not acquire lock {lock.lock_file} after "
                        f"{attempts} attempts. Another swiftvm process may be running.",
                        path=lock.lock_file,
                        hint="Wait for the other swiftvm process to finish and retry",
                    ) from None
                logger.warning(
                    f"Config lock busy (attempt {attempt + 1}/{attempts}), retrying..."
                )

        logger.debug(f"Acquired config lock: {lock.lock_file}")
        try:
            yield
        finally:
            lock.release()
            logger.debug(f"Released config lock: {lock.lock_file}")


__all__ = ["LockManager", "CONFIG_LOCK_NAME"]
