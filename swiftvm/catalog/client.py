"""
Client for the swift.org install catalog.

Queries the published release list and per-branch snapshot lists, keeps the
entries offered for the host platform, and describes where each toolchain
archive can be downloaded.

Endpoints:
    {api_url}/v1/install/releases.json
    {api_url}/v1/install/dev/{branch}/{platform}.json

Usage:
    from swiftvm.catalog import CatalogClient

    client = CatalogClient(settings, platform)
    for entry in client.list_available(descriptor):
        print(entry.version.name, entry.asset.url)
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence

import requests
from requests.exceptions import RequestException

from swiftvm.core.download import USER_AGENT
from swiftvm.core.exceptions import (
    CatalogNetworkError,
    CatalogParseError,
    InvalidVersionError,
)
from swiftvm.core.settings import Settings
from swiftvm.core.version import (
    Snapshot,
    SnapshotBranch,
    StableRelease,
    ToolchainVersion,
)
from swiftvm.platforms.base import Platform, PlatformDescriptor

logger = logging.getLogger(__name__)

_SNAPSHOT_DIR_RE = re.compile(
    r"swift(?:-(\d+)\.(\d+))?-DEVELOPMENT-SNAPSHOT-(\d{4}-\d{2}-\d{2})"
)

# JSON payloads from the catalog API are small
MAX_CATALOG_BYTES = 1024 * 1024


@dataclass
class ReleaseAsset:
    """
    Download metadata for one toolchain on one platform.

    Attributes:
        version: Toolchain version
        url: Archive download URL
        file_name: Archive file name
        sha256: Expected SHA256 digest, if the catalog publishes one
        signature_url: Detached signature URL, if the platform requires one
        size: Archive size in bytes, if known
    """

    version: ToolchainVersion
    url: str
    file_name: str
    sha256: Optional[str] = None
    signature_url: Optional[str] = None
    size: Optional[int] = None


@dataclass
class CatalogEntry:
    """A version offered by the catalog for the host, with its asset."""

    version: ToolchainVersion
    asset: ReleaseAsset


def _stable_name(name: str) -> str:
    # The catalog names x.y.0 releases as "x.y"
    if name.count(".") == 1:
        return f"{name}.0"
    return name


def parse_snapshot_dir(directory: str) -> Optional[Snapshot]:
    """
    Parse a snapshot directory name from the snapshot catalog.

    Example:
        >>> parse_snapshot_dir("swift-5.10-DEVELOPMENT-SNAPSHOT-2024-01-01-a")
        Snapshot(branch=SnapshotBranch(major=5, minor=10), date='2024-01-01')
    """
    match = _SNAPSHOT_DIR_RE.search(directory)
    if not match:
        return None

    if match.group(1) is not None:
        branch = SnapshotBranch(int(match.group(1)), int(match.group(2)))
    else:
        branch = SnapshotBranch()
    return Snapshot(branch, match.group(3))


def newest_first(entries: Iterable[CatalogEntry]) -> List[CatalogEntry]:
    """Sort entries for display: stable releases, then snapshots, newest first."""
    return sorted(entries, key=lambda e: e.version.sort_key(), reverse=True)


class CatalogClient:
    """
    Fetches and interprets the swift.org install catalog.

    Attributes:
        settings: Endpoint URLs, timeouts and retry policy
        platform: Host platform used to select assets
    """

    def __init__(
        self,
        settings: Settings,
        platform: Platform,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.platform = platform
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = USER_AGENT
        self.session = session

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _get_json(self, url: str) -> Optional[Any]:
        """
        GET a JSON document with retries.

        Returns:
            Decoded JSON, or None if the server answered 404

        Raises:
            CatalogNetworkError: If the document can't be fetched
            CatalogParseError: If the body is not JSON
        """
        attempts = max(1, self.settings.max_retries)

        for attempt in range(attempts):
            try:
                logger.debug(f"GET {url}")
                response = self.session.get(url, timeout=self.settings.timeout)
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                break
            except RequestException as e:
                status = getattr(getattr(e, "response", None), "status_code", None)
                if (status is not None and status < 500) or attempt == attempts - 1:
                    raise CatalogNetworkError(
                        f"Failed to fetch catalog from {url}: {e}",
                        hint="Check your network connection and try again",
                    ) from e
                backoff_seconds = self.settings.backoff_base * 2**attempt
                logger.warning(
                    f"Catalog request failed: {e}. Retrying in {backoff_seconds:g}s..."
                )
                time.sleep(backoff_seconds)

        if len(response.content) > MAX_CATALOG_BYTES:
            raise CatalogParseError(f"Catalog response from {url} is too large")

        try:
            return response.json()
        except ValueError as e:
            raise CatalogParseError(f"Catalog response from {url} is not JSON: {e}") from e

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def _asset_url(self, version: ToolchainVersion, descriptor: PlatformDescriptor) -> str:
        if isinstance(version, StableRelease):
            release = f"{version.major}.{version.minor}"
            if version.patch != 0:
                release += f".{version.patch}"
            category = f"swift-{release}-release"
        elif version.branch.is_main:
            category = "development"
        else:
            category = f"swift-{version.branch.name}-branch"

        file_name = self.platform.asset_file_name(version, descriptor)
        download_dir = self.platform.download_dir(descriptor)
        return (
            f"{self.settings.download_url}/{category}/{download_dir}/"
            f"{version.identifier}/{file_name}"
        )

    def asset_for(
        self,
        version: ToolchainVersion,
        descriptor: PlatformDescriptor,
        sha256: Optional[str] = None,
        size: Optional[int] = None,
    ) -> ReleaseAsset:
        """Build the download description of version for descriptor."""
        url = self._asset_url(version, descriptor)
        return ReleaseAsset(
            version=version,
            url=url,
            file_name=self.platform.asset_file_name(version, descriptor),
            sha256=sha256,
            signature_url=f"{url}.sig" if self.platform.requires_signature else None,
            size=size,
        )

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_releases(self, descriptor: PlatformDescriptor) -> List[CatalogEntry]:
        """
        Stable releases offered for descriptor, newest first.

        Raises:
            CatalogNetworkError: If the catalog can't be fetched
            CatalogParseError: If the response is not a list of releases
        """
        url = f"{self.settings.api_url}/v1/install/releases.json"
        body = self._get_json(url)
        if not isinstance(body, list):
            raise CatalogParseError(f"Expected a list of releases from {url}")

        entries = []
        for release in body:
            if not isinstance(release, dict) or not isinstance(release.get("name"), str):
                logger.debug(f"Skipping malformed release entry: {release!r}")
                continue

            platforms = release.get("platforms")
            if not isinstance(platforms, list):
                platforms = []
            platform_entry = self.platform.match_release_platform(
                [p for p in platforms if isinstance(p, dict)], descriptor
            )
            if platform_entry is None:
                continue

            try:
                version = ToolchainVersion.parse(_stable_name(release["name"]))
            except InvalidVersionError:
                logger.debug(f"Skipping release with unparsable name: {release['name']}")
                continue

            sha256, size = self._asset_metadata(platform_entry, descriptor)
            entries.append(
                CatalogEntry(version, self.asset_for(version, descriptor, sha256, size))
            )

        logger.debug(f"Catalog lists {len(entries)} release(s) for {descriptor}")
        return newest_first(entries)

    def _asset_metadata(self, platform_entry, descriptor: PlatformDescriptor):
        """Optional (sha256, size) published for one platform entry."""
        arch = descriptor.architecture
        sha256 = None
        size = None

        checksums = platform_entry.get("checksums")
        if isinstance(checksums, dict) and isinstance(checksums.get(arch), str):
            sha256 = checksums[arch]

        sizes = platform_entry.get("sizes")
        if isinstance(sizes, dict) and isinstance(sizes.get(arch), int):
            size = sizes[arch]

        return sha256, size

    def list_snapshots(
        self, descriptor: PlatformDescriptor, branch: SnapshotBranch
    ) -> List[CatalogEntry]:
        """
        Snapshots of one branch offered for descriptor, newest first.

        A branch the catalog does not know yields an empty list.

        Raises:
            CatalogNetworkError: If the catalog can't be fetched
            CatalogParseError: If the response has an unexpected shape
        """
        platform_name = self.platform.catalog_platform_name(descriptor)
        url = f"{self.settings.api_url}/v1/install/dev/{branch.name}/{platform_name}.json"
        body = self._get_json(url)
        if body is None:
            logger.debug(f"No snapshots published for branch {branch.name}")
            return []
        if not isinstance(body, dict):
            raise CatalogParseError(f"Expected a snapshot listing object from {url}")

        listing = body.get(self.platform.catalog_arch_key(descriptor)) or []
        if not isinstance(listing, list):
            raise CatalogParseError(f"Snapshot listing from {url} is not a list")

        entries = []
        for item in listing:
            directory = item.get("dir") if isinstance(item, dict) else None
            snapshot = parse_snapshot_dir(directory) if isinstance(directory, str) else None
            if snapshot is None:
                logger.debug(f"Skipping unparsable snapshot entry: {item!r}")
                continue
            if snapshot.branch != branch:
                continue

            sha256 = item.get("checksum") if isinstance(item.get("checksum"), str) else None
            size = item.get("size") if isinstance(item.get("size"), int) else None
            entries.append(
                CatalogEntry(snapshot, self.asset_for(snapshot, descriptor, sha256, size))
            )

        return newest_first(entries)

    def list_available(
        self,
        descriptor: PlatformDescriptor,
        branches: Sequence[SnapshotBranch] = (SnapshotBranch(),),
        include_releases: bool = True,
    ) -> List[CatalogEntry]:
        """
        Everything the catalog offers for descriptor, newest first.

        Args:
            descriptor: Host platform
            branches: Snapshot branches to include
            include_releases: Whether to include stable releases
        """
        entries: List[CatalogEntry] = []
        if include_releases:
            entries.extend(self.list_releases(descriptor))
        for branch in branches:
            entries.extend(self.list_snapshots(descriptor, branch))
        return newest_first(entries)


__all__ = [
    "CatalogClient",
    "CatalogEntry",
    "ReleaseAsset",
    "parse_snapshot_dir",
    "newest_first",
]
