"""
Download and verification pipeline.

fetch_and_verify() turns a ReleaseAsset into a verified archive on disk. Each
step is a hard gate:

1. Pre-flight free space check against a multiple of the asset size, for
   both the downloads directory and the extraction directory
2. Resumable download into ``<staging>.part``
3. Detached signature check, else checksum, else the platform's native check
4. Promotion of the ``.part`` file to its final name

An archive that fails verification is deleted and never retried.
"""

import logging
import os
from pathlib import Path
from typing import Callable, Optional

import requests

from swiftvm.catalog.client import ReleaseAsset
from swiftvm.core.download import DownloadProgress, download_file, fetch_bytes, remote_size
from swiftvm.core.exceptions import IntegrityError
from swiftvm.core.filesystem import check_free_space
from swiftvm.core.settings import Settings
from swiftvm.core.verification import SignatureVerifier, verify_checksum
from swiftvm.platforms.base import Platform

logger = logging.getLogger(__name__)

PART_SUFFIX = ".part"
SIGNATURE_SUFFIX = ".sig"


def part_path(staging_path: Path) -> Path:
    return staging_path.with_name(staging_path.name + PART_SUFFIX)


def _preflight(
    asset: ReleaseAsset,
    staging_path: Path,
    extract_dir: Optional[Path],
    settings: Settings,
    session: Optional[requests.Session],
) -> None:
    size = asset.size
    if size is None:
        size = remote_size(asset.url, timeout=settings.timeout, session=session)
    if size is None:
        logger.debug(f"Size of {asset.file_name} unknown; skipping disk space check")
        return

    required = int(size * settings.disk_space_multiplier)
    check_free_space(staging_path.parent, required)
    # The toolchain store may live on another filesystem than the downloads
    if extract_dir is not None and Path(extract_dir) != staging_path.parent:
        check_free_space(extract_dir, required)


def _verify(
    archive: Path,
    asset: ReleaseAsset,
    settings: Settings,
    platform: Platform,
    verifier: Optional[SignatureVerifier],
    session: Optional[requests.Session],
    verify: bool,
) -> None:
    """
    Run the integrity gate on a fully downloaded archive.

    Raises:
        IntegrityError: If verification fails or no integrity metadata exists
    """
    # A published checksum is checked even with verification disabled
    if asset.sha256:
        verify_checksum(archive, asset.sha256)

    if not verify:
        logger.warning(
            f"Skipping signature verification of {asset.file_name} (--no-verify)"
        )
        return

    if asset.signature_url:
        if verifier is None:
            raise IntegrityError(f"No signature verifier available for {asset.file_name}")
        signature_path = archive.with_name(archive.name + SIGNATURE_SUFFIX)
        try:
            logger.info(f"Verifying signature of {asset.file_name}...")
            signature_path.write_bytes(
                fetch_bytes(
                    asset.signature_url,
                    timeout=settings.timeout,
                    max_retries=settings.max_retries,
                    backoff_base=settings.backoff_base,
                    session=session,
                )
            )
            verifier.verify(archive, signature_path)
        finally:
            signature_path.unlink(missing_ok=True)
        return

    if asset.sha256:
        return

    if platform.verifies_natively:
        logger.debug(f"{asset.file_name} is verified natively during extraction")
        return

    raise IntegrityError(f"No integrity metadata available for {asset.file_name}")


def fetch_and_verify(
    asset: ReleaseAsset,
    staging_path: Path,
    *,
    settings: Settings,
    platform: Platform,
    verifier: Optional[SignatureVerifier] = None,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    verify: bool = True,
    session: Optional[requests.Session] = None,
    on_verify: Optional[Callable[[], None]] = None,
    extract_dir: Optional[Path] = None,
) -> Path:
    """
    Download asset to staging_path and verify it.

    Args:
        asset: What to download
        staging_path: Final location of the verified archive
        settings: Timeouts, retries and disk space multiplier
        platform: Host platform (for native verification)
        verifier: Detached signature verifier
        progress_callback: Optional download progress callback
        verify: False to skip signature verification (--no-verify)
        session: Optional requests session
        on_verify: Called once the download completes, before verification
        extract_dir: Directory the archive will be extracted into; its
            filesystem is checked for free space too

    Returns:
        staging_path

    Raises:
        InsufficientDiskSpace: If the pre-flight check fails
        DownloadError: If the download fails after retries
        ChecksumMismatch: If the archive does not match the published digest
        SignatureInvalid: If the signature does not verify
        IntegrityError: If there is nothing to verify the archive against
    """
    staging_path = Path(staging_path)
    staging_path.parent.mkdir(parents=True, exist_ok=True)
    partial = part_path(staging_path)

    _preflight(asset, staging_path, extract_dir, settings, session)

    logger.info(f"Downloading {asset.version.name}...")
    download_file(
        asset.url,
        partial,
        progress_callback=progress_callback,
        resume=True,
        timeout=settings.timeout,
        max_retries=settings.max_retries,
        backoff_base=settings.backoff_base,
        session=session,
    )

    if on_verify is not None:
        on_verify()

    try:
        _verify(partial, asset, settings, platform, verifier, session, verify)
    except IntegrityError:
        partial.unlink(missing_ok=True)
        raise

    os.replace(partial, staging_path)
    logger.debug(f"Verified archive ready at {staging_path}")
    return staging_path


__all__ = ["fetch_and_verify", "part_path"]
