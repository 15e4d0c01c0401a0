"""
Integrity verification for downloaded toolchain archives.

This module provides:
- SHA256 file hashing and timing-attack resistant checksum comparison
- Detached GPG signature verification against a keyring private to swiftvm

The keyring lives in ``<home>/gnupg`` and is seeded once from a fixed key
URL, so the user's own GPG configuration is never consulted or modified.
"""

import hashlib
import logging
import secrets
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Optional

from swiftvm.core.exceptions import (
    ChecksumMismatch,
    MissingDependencyError,
    SignatureInvalid,
)

logger = logging.getLogger(__name__)

DEFAULT_KEYS_URL = "https://www.swift.org/keys/all-keys.asc"


def compute_file_hash(file_path: Path, algorithm: str = "sha256") -> str:
    """
    Compute cryptographic hash of file.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If algorithm is not supported

    Example:
        >>> compute_file_hash(Path('swift.tar.gz'))
        'e3b0c442...'
    """
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    if algorithm.lower() not in ("sha256", "sha512"):
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")

    hasher = hashlib.new(algorithm.lower())
    with open(file_path, "rb") as f:
        while chunk := f.read(64 * 1024):
            hasher.update(chunk)

    return hasher.hexdigest()


def _is_valid_sha256(hash_str: str) -> bool:
    return len(hash_str) == 64 and all(c in "0123456789abcdef" for c in hash_str)


def verify_checksum(file_path: Path, expected_sha256: str) -> None:
    """
    Verify file matches expected SHA256 using constant-time comparison.

    Raises:
        ChecksumMismatch: If the digest differs or expected value is malformed
    """
    expected = expected_sha256.lower().strip()
    actual = compute_file_hash(file_path, "sha256")

    if not _is_valid_sha256(expected):
        raise ChecksumMismatch(file_path.name, expected, actual)

    if not secrets.compare_digest(actual.encode("utf-8"), expected.encode("utf-8")):
        raise ChecksumMismatch(file_path.name, expected, actual)

    logger.info(f"Checksum verified for {file_path.name}")


class SignatureVerifier:
    """
    Verifies detached signatures with gpg and a swiftvm-private keyring.

    Attributes:
        gnupg_home: GNUPGHOME used for every gpg invocation
        keys_url: Where the trusted public keys are fetched from on first use
    """

    def __init__(
        self,
        gnupg_home: Path,
        keys_url: str = DEFAULT_KEYS_URL,
        fetch: Optional[Callable[[str], bytes]] = None,
        timeout: float = 60,
    ):
        self.gnupg_home = Path(gnupg_home)
        self.keys_url = keys_url
        self._fetch = fetch
        self.timeout = timeout

    @property
    def keys_marker(self) -> Path:
        return self.gnupg_home / ".swiftvm-keys-imported"

    def _gpg(self, *args: str) -> subprocess.CompletedProcess:
        cmd = ["gpg", "--homedir", str(self.gnupg_home), "--batch", *args]
        try:
            return subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout
            )
        except FileNotFoundError:
            raise MissingDependencyError(
                "gpg is not installed; it is required to verify toolchain signatures",
                hint="Install gpg with your system package manager "
                "(e.g. 'apt-get -y install gpg'), or pass --no-verify",
            ) from None
        except subprocess.TimeoutExpired as e:
            raise SignatureInvalid(f"gpg timed out after {self.timeout}s") from e

    def ensure_keys(self) -> None:
        """
        Import the trusted keys into the private keyring if not done yet.

        Raises:
            SignatureInvalid: If the keys cannot be imported
            MissingDependencyError: If gpg is not installed
        """
        if self.keys_marker.exists():
            return

        if self._fetch is None:
            raise SignatureInvalid("No way to fetch trusted signing keys")

        logger.info(f"Importing trusted signing keys from {self.keys_url}")
        self.gnupg_home.mkdir(parents=True, exist_ok=True, mode=0o700)
        key_data = self._fetch(self.keys_url)

        with tempfile.TemporaryDirectory(prefix="swiftvm_keys_") as tmp:
            keys_file = Path(tmp) / "keys.asc"
            keys_file.write_bytes(key_data)
            result = self._gpg("--import", str(keys_file))

        if result.returncode != 0:
            raise SignatureInvalid(
                f"Failed to import trusted signing keys: {result.stderr.strip()}"
            )

        self.keys_marker.touch()

    def verify(self, file_path: Path, signature_path: Path) -> None:
        """
        Verify a detached signature.

        Raises:
            SignatureInvalid: If the signature does not verify
            MissingDependencyError: If gpg is not installed
        """
        if not signature_path.exists():
            raise SignatureInvalid(f"Signature file not found: {signature_path}")

        self.ensure_keys()
        result = self._gpg("--verify", str(signature_path), str(file_path))

        if result.returncode != 0:
            raise SignatureInvalid(
                f"Signature verification failed for {file_path.name}: "
                f"{result.stderr.strip()}",
                hint="The download may be corrupted or tampered with; "
                "it has been deleted",
            )

        logger.info(f"Signature verified for {file_path.name}")


__all__ = [
    "compute_file_hash",
    "verify_checksum",
    "SignatureVerifier",
    "DEFAULT_KEYS_URL",
]
