"""Exception hierarchy shared across catalog lookup, download, and verification.

The acquisition pipeline spans HTTP catalog requests, streaming transfers,
archive inspection, and digest bookkeeping.  This module groups the failure
modes into a small hierarchy so caller code can react to broad categories
(for example, network trouble vs. a tampered artifact) while still having
access to the specific details needed for operator diagnosis.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional, Union

__all__ = [
    "ArtifactDownloadError",
    "PolicyError",
    "TransportError",
    "CatalogError",
    "CatalogDecodeError",
    "ResolverError",
    "DownloadFailure",
    "StorageError",
    "ValidationOutcome",
    "ArtifactValidationError",
    "IntegrityError",
    "LaunchError",
    "UserConfigError",
    "ConfigError",
]

PathLike = Union[str, Path]


class ArtifactDownloadError(RuntimeError):
    """Base exception for artifact acquisition and verification failures."""


class PolicyError(ArtifactDownloadError):
    """Raised when a URL violates the encrypted-transport requirement."""


class TransportError(ArtifactDownloadError):
    """Raised when a connection cannot be established or times out."""


class CatalogError(ArtifactDownloadError):
    """Raised when the release catalog answers with a non-success status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CatalogDecodeError(ArtifactDownloadError):
    """Raised when a catalog response body cannot be decoded into a record."""


class ResolverError(ArtifactDownloadError):
    """Raised when a version or build cannot be resolved from the catalog."""


class DownloadFailure(ArtifactDownloadError):
    """Raised when streaming an artifact to disk fails."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        destination: Optional[PathLike] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.destination = Path(destination) if destination is not None else None
        self.status_code = status_code


class StorageError(ArtifactDownloadError):
    """Raised when a local filesystem operation fails."""

    def __init__(self, message: str, *, path: Optional[PathLike] = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class ValidationOutcome(str, Enum):
    """Reasons an artifact can fail structural validation."""

    NOT_FOUND = "does-not-exist"
    EMPTY = "empty"
    TOO_SMALL = "too-small"
    BAD_MAGIC = "bad-magic"
    CORRUPT_ARCHIVE = "corrupt-archive"
    NO_ENTRIES = "no-entries"


class ArtifactValidationError(ArtifactDownloadError):
    """Raised when a local file is not a well-formed archive."""

    def __init__(self, message: str, *, reason: ValidationOutcome, path: PathLike) -> None:
        super().__init__(message)
        self.reason = reason
        self.path = Path(path)


class IntegrityError(ArtifactDownloadError):
    """Raised when an artifact digest does not match the recorded value."""

    def __init__(self, *, path: PathLike, expected: str, actual: str) -> None:
        super().__init__(
            f"Checksum mismatch for file: {path}\nExpected: {expected}\nActual: {actual}"
        )
        self.path = Path(path)
        self.expected = expected
        self.actual = actual


class LaunchError(ArtifactDownloadError):
    """Raised when the server process cannot be prepared or started."""


class UserConfigError(RuntimeError):
    """Raised when CLI arguments or YAML configuration inputs are invalid."""


# Backwards compatibility alias used throughout the package.
ConfigError = UserConfigError
