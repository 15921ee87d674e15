# === NAVMAP v1 ===
# {
#   "module": "PaperLaunch.ArtifactDownload.pipeline",
#   "purpose": "Decide reuse vs download, then validate, checksum, and record a trusted artifact",
#   "sections": [
#     {"id": "acquirer", "name": "ArtifactAcquirer", "anchor": "ACQ", "kind": "class"},
#     {"id": "facade", "name": "acquire_artifact", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Acquisition pipeline that turns a version token into a trusted artifact.

The acquirer runs one request through three branches:

* **discover** scans the working directory for files following the naming
  convention and keeps the first one that validates structurally;
* **audit** (existing path) validates and hashes a local file in one pass and
  compares it with the sidecar digest, or records the digest when no trusted
  sidecar exists yet;
* **fetch** (fresh download) resolves the version and build from the catalog,
  streams the artifact, and audits the result.

A discovered artifact can also be checked against the catalog; a newer build
of the same version replaces it through the fresh-download branch when
``server.auto_update`` is enabled or the caller confirms.

Nothing is returned to the caller unless it passed both structural validation
and digest confirmation.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

from .catalog import CatalogClient
from .checksums import ChecksumStore, Digest
from .download import Downloader, ProgressCallback, sanitize_filename
from .errors import ArtifactValidationError, IntegrityError, StorageError
from .net import HttpTransport
from .resolvers import (
    ArtifactDescriptor,
    ArtifactDescriptorFetcher,
    BuildLocator,
    VersionResolver,
)
from .settings import LauncherConfig
from .validation import validate_and_digest, validate_artifact

LOGGER = logging.getLogger("PaperLaunch.ArtifactDownload.pipeline")

_VERSION_BUILD = re.compile(r"(?P<version>.+)-(?P<build>\d+)")

UpdateConfirm = Callable[[Path, ArtifactDescriptor], bool]


@dataclass(slots=True, frozen=True)
class AcquiredArtifact:
    """A local artifact that passed structural and digest checks.

    Attributes:
        path: Location of the artifact on disk.
        digest: SHA-256 of the full file contents.
        source: ``discovered``, ``existing``, or ``downloaded``.
        descriptor: Catalog descriptor when the catalog was consulted.
    """

    path: Path
    digest: Digest
    source: str
    descriptor: Optional[ArtifactDescriptor] = None

    @property
    def filename(self) -> str:
        return self.path.name


class ArtifactAcquirer:
    """Compose catalog resolution, download, validation, and checksum storage."""

    def __init__(
        self,
        config: Optional[LauncherConfig] = None,
        *,
        transport: Optional[HttpTransport] = None,
        work_dir: Optional[Path] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.config = config or LauncherConfig()
        self.transport = transport or HttpTransport(self.config.http)
        self.work_dir = Path(work_dir) if work_dir is not None else self.config.work_directory()
        self.catalog = CatalogClient(self.transport, self.config.http)
        self.versions = VersionResolver(self.catalog)
        self.builds = BuildLocator(self.catalog)
        self.descriptors = ArtifactDescriptorFetcher(self.catalog)
        self.downloader = Downloader(self.transport, self.config.download, progress=progress)
        self.checksums = ChecksumStore(self.config.artifact.checksum_suffix)

    # -- Discover ----------------------------------------------------------------

    def _candidates(self) -> Iterator[Path]:
        try:
            entries: List[Path] = sorted(self.work_dir.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            raise StorageError(
                f"Failed to read directory {self.work_dir}: {exc}", path=self.work_dir
            ) from exc
        for entry in entries:
            if entry.is_file() and self.config.artifact.matches(entry.name):
                yield entry

    def discover(self) -> Optional[Path]:
        """Return the first structurally valid artifact in the working directory."""

        for candidate in self._candidates():
            try:
                validate_artifact(candidate)
            except (ArtifactValidationError, StorageError) as exc:
                LOGGER.warning(
                    "Found JAR file '%s' but validation failed: %s. Skipping.",
                    candidate.name,
                    exc,
                    extra={"stage": "discover", "path": str(candidate)},
                )
                continue
            LOGGER.info(
                "discovered artifact", extra={"stage": "discover", "path": str(candidate)}
            )
            return candidate
        return None

    # -- Existing path -----------------------------------------------------------

    def audit(self, path: Path) -> Digest:
        """Validate ``path`` and reconcile its digest with the sidecar.

        A sidecar holding a decodable 32-byte digest must match; anything else
        is treated as absent and replaced with the freshly computed digest.

        Raises:
            ArtifactValidationError: If the archive is malformed.
            IntegrityError: If a trusted sidecar digest does not match.
        """

        path = Path(path)
        sidecar = self.checksums.sidecar_for(path)
        recorded = Digest.from_hex(self.checksums.load(sidecar))
        actual = validate_and_digest(path)

        if recorded is not None:
            if recorded != actual:
                LOGGER.error(
                    "sha256 mismatch detected",
                    extra={
                        "stage": "checksum",
                        "path": str(path),
                        "expected": recorded.hexdigest(),
                        "actual": actual.hexdigest(),
                    },
                )
                raise IntegrityError(
                    path=path, expected=recorded.hexdigest(), actual=actual.hexdigest()
                )
            LOGGER.info(
                "checksum verified", extra={"stage": "checksum", "path": str(path)}
            )
            return actual

        self.checksums.save(sidecar, actual.hexdigest())
        LOGGER.info(
            "recorded checksum",
            extra={"stage": "checksum", "path": str(path), "sidecar": str(sidecar)},
        )
        return actual

    # -- Fresh download ----------------------------------------------------------

    def resolve(self, version_token: str) -> ArtifactDescriptor:
        """Resolve ``version_token`` to the descriptor of its newest build."""

        version = self.versions.resolve(version_token)
        build = self.builds.latest_build(version)
        return self.descriptors.fetch(version, build)

    def fetch(self, version_token: str) -> AcquiredArtifact:
        """Download (if needed) and audit the newest build of ``version_token``."""

        return self.fetch_descriptor(self.resolve(version_token))

    def fetch_descriptor(self, descriptor: ArtifactDescriptor) -> AcquiredArtifact:
        destination = self.work_dir / sanitize_filename(descriptor.filename)
        if destination.exists():
            LOGGER.info(
                "catalog artifact already present",
                extra={"stage": "download", "path": str(destination)},
            )
            return AcquiredArtifact(destination, self.audit(destination), "existing", descriptor)

        url = self.catalog.download_url(descriptor.version, descriptor.build, descriptor.filename)
        LOGGER.info(
            "downloading artifact",
            extra={
                "stage": "download",
                "version": descriptor.version,
                "build": descriptor.build,
                "url": url,
            },
        )
        self.downloader.download(url, destination)
        digest = validate_and_digest(destination)
        self.checksums.save(self.checksums.sidecar_for(destination), digest.hexdigest())
        LOGGER.info(
            "validated downloaded artifact",
            extra={"stage": "validate", "path": str(destination), "sha256": digest.hexdigest()},
        )
        return AcquiredArtifact(destination, digest, "downloaded", descriptor)

    # -- Update check ------------------------------------------------------------

    def installed_build(self, path: Path) -> Optional[Tuple[str, int]]:
        """Return ``(version, build)`` encoded in an artifact name, if any."""

        name = Path(path).name
        artifact = self.config.artifact
        if not artifact.matches(name):
            return None
        stem = name[len(artifact.prefix) : len(name) - len(artifact.extension)]
        match = _VERSION_BUILD.fullmatch(stem)
        if match is None:
            return None
        return match.group("version"), int(match.group("build"))

    def check_update(self, path: Path) -> Optional[ArtifactDescriptor]:
        """Return the descriptor of a newer catalog build than ``path``, if one exists."""

        installed = self.installed_build(path)
        if installed is None:
            LOGGER.info(
                "skipping update check for unversioned artifact",
                extra={"stage": "update", "path": str(path)},
            )
            return None
        version, build = installed
        latest = self.builds.latest_build(version)
        if latest <= build:
            LOGGER.info(
                "artifact is up to date",
                extra={"stage": "update", "version": version, "build": build},
            )
            return None
        LOGGER.info(
            "newer build available",
            extra={"stage": "update", "version": version, "build": build, "latest": latest},
        )
        return self.descriptors.fetch(version, latest)

    # -- Orchestration -----------------------------------------------------------

    def acquire(
        self,
        version_token: Optional[str] = None,
        *,
        check_updates: Optional[bool] = None,
        confirm_update: Optional[UpdateConfirm] = None,
    ) -> AcquiredArtifact:
        """Return a trusted artifact, reusing a local one when possible.

        ``check_updates`` defaults to ``server.auto_update``. When set, a
        discovered artifact is compared with the newest catalog build of its
        version. The newer build is downloaded when ``server.auto_update`` is
        enabled or ``confirm_update`` accepts it; otherwise the local artifact
        is kept.
        """

        if check_updates is None:
            check_updates = self.config.server.auto_update
        found = self.discover()
        if found is not None:
            if check_updates:
                newer = self.check_update(found)
                if newer is not None and self._update_accepted(found, newer, confirm_update):
                    return self.fetch_descriptor(newer)
            return AcquiredArtifact(found, self.audit(found), "discovered")
        token = version_token or self.config.server.minecraft_version
        return self.fetch(token)

    def _update_accepted(
        self,
        path: Path,
        descriptor: ArtifactDescriptor,
        confirm_update: Optional[UpdateConfirm],
    ) -> bool:
        if self.config.server.auto_update:
            return True
        if confirm_update is not None and confirm_update(path, descriptor):
            return True
        LOGGER.info(
            "update declined, keeping local artifact",
            extra={"stage": "update", "path": str(path), "build": descriptor.build},
        )
        return False

    def close(self) -> None:
        self.transport.close()


def acquire_artifact(
    config: Optional[LauncherConfig] = None,
    *,
    version: Optional[str] = None,
    transport: Optional[HttpTransport] = None,
    work_dir: Optional[Path] = None,
    progress: Optional[ProgressCallback] = None,
    check_updates: Optional[bool] = None,
    confirm_update: Optional[UpdateConfirm] = None,
) -> AcquiredArtifact:
    """Run one acquisition request and return the trusted artifact.

    Args:
        config: Launcher configuration; defaults are used when omitted.
        version: Version token overriding ``config.server.minecraft_version``.
        transport: Shared HTTP transport; a private one is created and closed
            when omitted.
        work_dir: Directory to discover and store artifacts in.
        progress: Optional ``(bytes_done, total)`` download progress callback.
        check_updates: Compare a discovered artifact with the newest catalog
            build; defaults to ``server.auto_update``.
        confirm_update: Asked before replacing an outdated artifact when
            ``server.auto_update`` is disabled.

    Returns:
        AcquiredArtifact for the validated file.
    """

    owns_transport = transport is None
    acquirer = ArtifactAcquirer(config, transport=transport, work_dir=work_dir, progress=progress)
    try:
        return acquirer.acquire(
            version, check_updates=check_updates, confirm_update=confirm_update
        )
    finally:
        if owns_transport:
            acquirer.close()


__all__ = ["AcquiredArtifact", "ArtifactAcquirer", "UpdateConfirm", "acquire_artifact"]
