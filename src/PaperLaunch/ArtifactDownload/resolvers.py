"""Resolve a version token down to a concrete downloadable artifact.

The catalog defines "latest" by ordering, not by comparing version strings:
the newest version is the last element of the project's version list and the
newest build is the last element of a version's build list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .catalog import CatalogClient
from .errors import ResolverError
from .settings import DEFAULT_VERSION

LOGGER = logging.getLogger("PaperLaunch.ArtifactDownload.resolvers")

LATEST = DEFAULT_VERSION


@dataclass(slots=True, frozen=True)
class ArtifactDescriptor:
    """Identifies exactly one downloadable server binary.

    Attributes:
        version: Concrete catalog version, e.g. ``1.21.1``.
        build: Build number within ``version``.
        filename: Canonical artifact filename published by the catalog.

    Examples:
        >>> ArtifactDescriptor("1.21.1", 100, "paper-1.21.1-100.jar").build
        100
    """

    version: str
    build: int
    filename: str


class VersionResolver:
    """Map the ``latest`` sentinel to a concrete version."""

    def __init__(self, catalog: CatalogClient) -> None:
        self.catalog = catalog

    def resolve(self, token: str) -> str:
        """Return the concrete version for ``token``.

        Explicit versions are returned verbatim; an unknown version only
        surfaces later, when its build list is requested.
        """

        if token != LATEST:
            return token
        project = self.catalog.fetch_project()
        if not project.versions:
            raise ResolverError("No versions found")
        version = project.versions[-1]
        LOGGER.info("resolved latest version", extra={"stage": "catalog", "version": version})
        return version


class BuildLocator:
    """Select the newest build of a version."""

    def __init__(self, catalog: CatalogClient) -> None:
        self.catalog = catalog

    def latest_build(self, version: str) -> int:
        builds = self.catalog.fetch_builds(version).builds
        if not builds:
            raise ResolverError(f"No builds found for version {version}")
        build = builds[-1].build
        LOGGER.info(
            "located latest build",
            extra={"stage": "catalog", "version": version, "build": build},
        )
        return build


class ArtifactDescriptorFetcher:
    """Fetch the artifact filename for a version/build pair (never cached)."""

    def __init__(self, catalog: CatalogClient) -> None:
        self.catalog = catalog

    def fetch(self, version: str, build: int) -> ArtifactDescriptor:
        info = self.catalog.fetch_download_info(version, build)
        return ArtifactDescriptor(
            version=version,
            build=build,
            filename=info.downloads.application.name,
        )


__all__ = [
    "LATEST",
    "ArtifactDescriptor",
    "ArtifactDescriptorFetcher",
    "BuildLocator",
    "VersionResolver",
]
