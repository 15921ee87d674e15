# === NAVMAP v1 ===
# {
#   "module": "PaperLaunch.ArtifactDownload",
#   "purpose": "Package initialization for PaperLaunch.ArtifactDownload",
#   "sections": [
#     {"id": "getattr", "name": "__getattr__", "anchor": "function-getattr", "kind": "function"},
#     {"id": "dir", "name": "__dir__", "anchor": "function-dir", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Public API for acquiring and verifying Paper server artifacts.

This facade exposes the acquisition pipeline (catalog resolution, streaming
download, archive validation, and sidecar checksum bookkeeping) without
importing the HTTP stack until an attribute is first used.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any, Dict

_EXPORTS: Dict[str, str] = {
    "AcquiredArtifact": ".pipeline",
    "ArtifactAcquirer": ".pipeline",
    "acquire_artifact": ".pipeline",
    "ArtifactDescriptor": ".resolvers",
    "CatalogClient": ".catalog",
    "ChecksumStore": ".checksums",
    "Digest": ".checksums",
    "Downloader": ".download",
    "HttpTransport": ".net",
    "LauncherConfig": ".settings",
    "load_config": ".settings",
    "sha256_file": ".checksums",
    "validate_artifact": ".validation",
    "validate_and_digest": ".validation",
    "verify_file": ".checksums",
    "ArtifactDownloadError": ".errors",
    "ArtifactValidationError": ".errors",
    "IntegrityError": ".errors",
    "ValidationOutcome": ".errors",
}

__all__ = sorted(_EXPORTS)

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .catalog import CatalogClient
    from .checksums import ChecksumStore, Digest, sha256_file, verify_file
    from .download import Downloader
    from .errors import (
        ArtifactDownloadError,
        ArtifactValidationError,
        IntegrityError,
        ValidationOutcome,
    )
    from .net import HttpTransport
    from .pipeline import AcquiredArtifact, ArtifactAcquirer, acquire_artifact
    from .resolvers import ArtifactDescriptor
    from .settings import LauncherConfig, load_config
    from .validation import validate_and_digest, validate_artifact


def __getattr__(name: str) -> Any:
    """Lazily import public exports on first access."""

    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    value = getattr(import_module(module_name, __name__), name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    """Expose lazily-populated attributes in ``dir()`` results."""

    return sorted(set(globals()) | set(__all__))
