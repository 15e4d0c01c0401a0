"""
Network download manager with progress tracking and retry logic.

This module provides robust downloading capabilities with:
- HTTP/HTTPS downloads with TLS verification
- Resume of partial downloads (Range headers), restarting from zero when the
  server ignores the range
- Progress reporting (bytes, percentage, speed, ETA)
- Retry logic with bounded exponential backoff
- Per-request timeouts

Integrity checks are deliberately not done here; see
swiftvm.core.verification and swiftvm.toolchain.pipeline.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests
from requests.exceptions import ConnectionError, HTTPError, RequestException, Timeout

from swiftvm import __version__
from swiftvm.core.exceptions import DownloadError

logger = logging.getLogger(__name__)

USER_AGENT = f"swiftvm/{__version__}"

CHUNK_SIZE = 64 * 1024

# Client errors that will not go away by retrying
_FATAL_STATUS = {400, 401, 403, 404, 405, 410}


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: int
    percentage: float
    speed_bps: float  # bytes per second
    eta_seconds: float  # estimated time remaining

    def __str__(self) -> str:
        return format_progress(self)


def _session(session: Optional[requests.Session]) -> requests.Session:
    if session is not None:
        return session
    new_session = requests.Session()
    new_session.headers["User-Agent"] = USER_AGENT
    return new_session


def _is_fatal(error: RequestException) -> bool:
    response = getattr(error, "response", None)
    return (
        isinstance(error, HTTPError)
        and response is not None
        and response.status_code in _FATAL_STATUS
    )


def download_file(
    url: str,
    destination: Path,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    resume: bool = True,
    timeout: float = 30,
    max_retries: int = 5,
    backoff_base: float = 1.0,
    session: Optional[requests.Session] = None,
) -> Path:
    """
    Download file from URL to destination with retry and resume.

    Every attempt resumes from whatever is already on disk at destination.

    Args:
        url: URL to download from
        destination: Local path to save file
        progress_callback: Optional callback for progress updates
        resume: Whether to resume partial downloads
        timeout: Per-request timeout in seconds
        max_retries: Maximum number of attempts
        backoff_base: First retry delay in seconds; doubles each attempt
        session: Optional requests session to use

    Returns:
        Path to downloaded file

    Raises:
        DownloadError: If download fails after retries or with a fatal status
        ValueError: If URL or destination is invalid

    Example:
        >>> def on_progress(progress):
        ...     print(f"Downloaded {progress.percentage:.1f}%")
        >>> download_file(url, Path("downloads/swift.tar.gz.part"), on_progress)
    """
    if not url:
        raise ValueError("URL cannot be empty")

    if not destination:
        raise ValueError("Destination path cannot be empty")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    http = _session(session)
    attempts = max(1, max_retries)

    for attempt in range(attempts):
        resume_from = 0
        if resume and destination.exists():
            resume_from = destination.stat().st_size
            if resume_from:
                logger.info(f"Resuming download from byte {resume_from}")

        try:
            return _download_with_progress(
                http=http,
                url=url,
                destination=destination,
                resume_from=resume_from,
                progress_callback=progress_callback,
                timeout=timeout,
            )
        except (Timeout, ConnectionError, HTTPError, RequestException) as e:
            if _is_fatal(e):
                raise DownloadError(f"Download of {url} failed: {e}") from e

            if attempt == attempts - 1:
                raise DownloadError(
                    f"Download of {url} failed after {attempts} attempts: {e}",
                    hint="Check your network connection and try again; "
                    "the partial download will be resumed",
                ) from e

            backoff_seconds = backoff_base * 2**attempt
            logger.warning(
                f"Download attempt {attempt + 1} failed: {e}. "
                f"Retrying in {backoff_seconds:g}s..."
            )
            time.sleep(backoff_seconds)

    raise DownloadError(f"Download of {url} failed for unknown reason")


def _download_with_progress(
    http: requests.Session,
    url: str,
    destination: Path,
    resume_from: int,
    progress_callback: Optional[Callable[[DownloadProgress], None]],
    timeout: float,
) -> Path:
    """
    Perform one streaming download attempt.

    Raises:
        RequestException: If the HTTP request fails
    """
    headers = {}
    if resume_from > 0:
        headers["Range"] = f"bytes={resume_from}-"

    logger.info(f"Downloading from {url}")

    response = http.get(
        url, headers=headers, stream=True, timeout=timeout, allow_redirects=True
    )

    with response:
        if response.status_code == 416 and resume_from > 0:
            # Local partial file is unusable for this resource
            logger.warning("Server rejected resume range, restarting download")
            destination.unlink()
            return _download_with_progress(
                http, url, destination, 0, progress_callback, timeout
            )

        response.raise_for_status()

        if resume_from > 0 and response.status_code != 206:
            logger.info("Server does not support range requests, restarting download")
            resume_from = 0

        content_length = response.headers.get("content-length")
        total_size = int(content_length) + resume_from if content_length else 0

        mode = "ab" if resume_from > 0 else "wb"
        downloaded = resume_from
        start_time = time.time()
        last_progress_time = start_time

        with open(destination, mode) as f:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if not chunk:
                    continue
                f.write(chunk)
                downloaded += len(chunk)

                # Report progress (max once per 0.5 seconds to avoid spam)
                current_time = time.time()
                if progress_callback and (
                    current_time - last_progress_time >= 0.5
                    or downloaded == total_size
                ):
                    elapsed = current_time - start_time
                    speed = (downloaded - resume_from) / elapsed if elapsed > 0 else 0
                    remaining = total_size - downloaded if total_size > 0 else 0
                    eta = remaining / speed if speed > 0 else 0

                    progress_callback(
                        DownloadProgress(
                            bytes_downloaded=downloaded,
                            total_bytes=total_size if total_size > 0 else downloaded,
                            percentage=(downloaded / total_size * 100)
                            if total_size > 0
                            else 0,
                            speed_bps=speed,
                            eta_seconds=eta,
                        )
                    )
                    last_progress_time = current_time

    if total_size and downloaded < total_size:
        raise ConnectionError(
            f"Connection closed after {downloaded} of {total_size} bytes"
        )

    logger.info(f"Download complete: {destination}")
    return destination


def fetch_bytes(
    url: str,
    timeout: float = 30,
    max_retries: int = 5,
    backoff_base: float = 1.0,
    session: Optional[requests.Session] = None,
    max_bytes: int = 1024 * 1024,
) -> bytes:
    """
    Fetch a small resource (signature files, metadata) into memory.

    Raises:
        DownloadError: If the resource can't be fetched or exceeds max_bytes
    """
    http = _session(session)
    attempts = max(1, max_retries)

    for attempt in range(attempts):
        try:
            response = http.get(url, timeout=timeout)
            response.raise_for_status()
            if len(response.content) > max_bytes:
                raise DownloadError(f"Response from {url} exceeds {max_bytes} bytes")
            return response.content
        except RequestException as e:
            if _is_fatal(e) or attempt == attempts - 1:
                raise DownloadError(f"Failed to fetch {url}: {e}") from e
            backoff_seconds = backoff_base * 2**attempt
            logger.warning(
                f"Fetch attempt {attempt + 1} for {url} failed: {e}. "
                f"Retrying in {backoff_seconds:g}s..."
            )
            time.sleep(backoff_seconds)

    raise DownloadError(f"Failed to fetch {url} for unknown reason")


def remote_size(
    url: str, timeout: float = 30, session: Optional[requests.Session] = None
) -> Optional[int]:
    """Content-Length of url from a HEAD request, or None if unknown."""
    http = _session(session)
    try:
        response = http.head(url, timeout=timeout, allow_redirects=True)
        response.raise_for_status()
    except RequestException as e:
        logger.debug(f"HEAD {url} failed: {e}")
        return None

    content_length = response.headers.get("content-length")
    if content_length and content_length.isdigit():
        return int(content_length)
    return None


def format_progress(progress: DownloadProgress) -> str:
    """
    Format progress for display.

    Example:
        >>> progress = DownloadProgress(52428800, 104857600, 50.0, 1048576, 50)
        >>> print(format_progress(progress))
        50.0/100.0 MB (50.0%) at 1.0 MB/s ETA: 50s
    """
    mb_downloaded = progress.bytes_downloaded / 1024 / 1024
    mb_total = progress.total_bytes / 1024 / 1024
    speed_mbps = progress.speed_bps / 1024 / 1024

    if progress.total_bytes > 0:
        return (
            f"{mb_downloaded:.1f}/{mb_total:.1f} MB "
            f"({progress.percentage:.1f}%) "
            f"at {speed_mbps:.1f} MB/s "
            f"ETA: {progress.eta_seconds:.0f}s"
        )
    return f"{mb_downloaded:.1f} MB at {speed_mbps:.1f} MB/s"


__all__ = [
    "DownloadProgress",
    "download_file",
    "fetch_bytes",
    "remote_size",
    "format_progress",
    "USER_AGENT",
]
