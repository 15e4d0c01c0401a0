"""
File system utilities for swiftvm.

This module provides the crash-safe building blocks the engine relies on:
- Atomic file writes (temp file + fsync + rename)
- Atomic symlink replacement
- Safe directory removal restricted to a prefix
- Tar extraction with directory traversal protection
- Free space pre-flight checks
"""

import os
import shutil
import sys
import tarfile
import tempfile
import uuid
from pathlib import Path
from typing import Optional, Union

from swiftvm.core.exceptions import (
    ExtractionFailed,
    FilesystemError,
    InsecureArchiveError,
    InsufficientDiskSpace,
)


# ============================================================================
# Path Utilities
# ============================================================================


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is relative to (under) parent directory.

    Example:
        >>> is_relative_to(Path("/home/user/project/file.txt"), Path("/home/user"))
        True
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists (idempotent).

    Raises:
        FilesystemError: If the directory cannot be created
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Could not create directory {path}: {e}") from e
    return path


def is_empty_directory(path: Union[str, Path]) -> bool:
    """Check if path is an existing, empty directory."""
    path = Path(path)
    if not path.is_dir():
        return False
    return not any(path.iterdir())


def directory_size(path: Union[str, Path]) -> int:
    """Calculate total size of a directory in bytes."""
    total_size = 0
    for item in Path(path).rglob("*"):
        if item.is_file() and not item.is_symlink():
            total_size += item.stat().st_size
    return total_size


def sibling_temp_path(path: Path, tag: str) -> Path:
    """
    Hidden sibling of path used as a staging location for atomic renames.

    Example:
        >>> sibling_temp_path(Path("/t/5.10.0"), "staging")
        PosixPath('/t/.5.10.0.staging-3f2a...')
    """
    return path.parent / f".{path.name}.{tag}-{uuid.uuid4().hex[:12]}"


# ============================================================================
# Safe File Operations
# ============================================================================


def _fsync_directory(directory: Path) -> None:
    """Flush a directory entry update to disk where the OS allows it."""
    if os.name == "nt":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write(
    file_path: Union[str, Path],
    content: Union[str, bytes],
    encoding: str = "utf-8",
    fsync: bool = True,
) -> None:
    """
    Write file atomically using temp file + rename.

    The file is never observable in a partially-written state. If the write
    fails, the original file (if any) remains unchanged.

    Args:
        file_path: Path to write to
        content: Content to write (string or bytes)
        encoding: Text encoding (used only for string content)
        fsync: Flush the data and the directory entry before returning

    Example:
        >>> atomic_write('config.json', '{"key": "value"}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Temp file in the same directory keeps the rename on one filesystem
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        data = content.encode(encoding) if isinstance(content, str) else content
        with open(temp_fd, "wb") as f:
            f.write(data)
            if fsync:
                f.flush()
                os.fsync(f.fileno())

        temp_path.replace(file_path)

        if fsync:
            _fsync_directory(file_path.parent)

    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def replace_symlink(link_path: Path, target: Path) -> None:
    """
    Atomically point link_path at target.

    A new link is created beside the old one and renamed over it, so readers
    always see either the old or the new target.
    """
    link_path.parent.mkdir(parents=True, exist_ok=True)
    temp_link = sibling_temp_path(link_path, "link")
    try:
        os.symlink(target, temp_link, target_is_directory=True)
        os.replace(temp_link, link_path)
    except OSError as e:
        if temp_link.is_symlink():
            temp_link.unlink()
        raise FilesystemError(f"Failed to update link {link_path}: {e}") from e


def remove_symlink(link_path: Path) -> None:
    """Remove a symlink if present; refuses to touch real directories."""
    if link_path.is_symlink():
        link_path.unlink()
    elif link_path.exists():
        raise FilesystemError(f"Refusing to remove non-link path: {link_path}")


def safe_rmtree(
    path: Union[str, Path], require_prefix: Optional[Union[str, Path]] = None
) -> None:
    """
    Safely remove a directory tree with safeguards.

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be under this directory

    Raises:
        ValueError: If path is not under require_prefix
        FilesystemError: If deletion fails

    Example:
        >>> safe_rmtree('/tmp/build', require_prefix='/tmp')
        >>> safe_rmtree('/usr/bin', require_prefix='/home')  # ValueError
    """
    path = Path(path).absolute()

    if require_prefix is not None:
        require_prefix = Path(require_prefix).absolute()
        if path == require_prefix or not is_relative_to(path, require_prefix):
            raise ValueError(
                f"Refusing to delete '{path}': not under required prefix '{require_prefix}'"
            )

    if not path.exists() and not path.is_symlink():
        return

    if path.is_symlink() or not path.is_dir():
        raise FilesystemError(f"Path is not a directory: {path}")

    try:
        shutil.rmtree(path)
    except OSError as e:
        raise FilesystemError(f"Failed to remove directory '{path}': {e}") from e


# ============================================================================
# Archive Extraction
# ============================================================================


def _validate_archive_path(path: str, destination: Path) -> None:
    """
    Validate that an archive member path is safe to extract.

    Raises:
        InsecureArchiveError: If path attempts directory traversal
    """
    member_path = (destination / path).resolve()

    if not is_relative_to(member_path, destination.resolve()):
        raise InsecureArchiveError(
            f"Archive member '{path}' attempts directory traversal. "
            "This is a security risk and extraction has been blocked."
        )


def _strip_member(member: tarfile.TarInfo, strip_components: int) -> bool:
    """Drop leading path components from a member; False if nothing remains."""
    parts = [p for p in member.name.split("/") if p not in ("", ".")]
    if len(parts) <= strip_components:
        return False
    member.name = "/".join(parts[strip_components:])
    if member.islnk():
        # Hard link targets are member names and carry the same prefix
        link_parts = [p for p in member.linkname.split("/") if p not in ("", ".")]
        member.linkname = "/".join(link_parts[strip_components:])
    return True


def extract_tar(
    archive_path: Union[str, Path],
    destination: Union[str, Path],
    strip_components: int = 0,
) -> None:
    """
    Extract a tar archive (any compression tarfile understands) safely.

    All member paths are validated against directory traversal before
    anything is written. Link members pointing outside destination are
    rejected as well.

    Args:
        archive_path: Path to the archive file
        destination: Directory to extract into (created if missing)
        strip_components: Number of leading path components to drop

    Raises:
        ExtractionFailed: If the archive cannot be read or extracted
        InsecureArchiveError: If the archive contains malicious paths
    """
    archive_path = Path(archive_path)
    destination = Path(destination)

    if not archive_path.exists():
        raise ExtractionFailed(f"Archive not found: {archive_path}")

    destination.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(archive_path, "r:*") as tar:
            members = []
            for member in tar.getmembers():
                if strip_components and not _strip_member(member, strip_components):
                    continue
                _validate_archive_path(member.name, destination)
                if member.issym():
                    _validate_archive_path(
                        str(Path(member.name).parent / member.linkname), destination
                    )
                elif member.islnk():
                    _validate_archive_path(member.linkname, destination)
                members.append(member)

            if sys.version_info >= (3, 12):
                tar.extractall(destination, members=members, filter="data")
            else:
                tar.extractall(destination, members=members)
    except InsecureArchiveError:
        raise
    except (tarfile.TarError, OSError, ValueError) as e:
        raise ExtractionFailed(f"Failed to extract {archive_path}: {e}") from e


# ============================================================================
# Disk Space
# ============================================================================


def check_free_space(path: Union[str, Path], required_bytes: int) -> int:
    """
    Ensure the filesystem holding path has at least required_bytes free.

    Args:
        path: Any path on the target filesystem (nearest existing parent is used)
        required_bytes: Minimum free bytes

    Returns:
        Available bytes

    Raises:
        InsufficientDiskSpace: If less than required_bytes are available
    """
    existing = Path(path)
    while not existing.exists() and existing != existing.parent:
        existing = existing.parent

    available = shutil.disk_usage(existing).free
    if available < required_bytes:
        raise InsufficientDiskSpace(Path(path), required_bytes, available)
    return available


__all__ = [
    "is_relative_to",
    "ensure_directory",
    "is_empty_directory",
    "directory_size",
    "sibling_temp_path",
    "atomic_write",
    "replace_symlink",
    "remove_symlink",
    "safe_rmtree",
    "extract_tar",
    "check_free_space",
]
