"""
swift.org install catalog access.
"""

from .client import CatalogClient, CatalogEntry, ReleaseAsset

__all__ = ["CatalogClient", "CatalogEntry", "ReleaseAsset"]
