"""Release catalog client and typed response records.

The catalog exposes three JSON documents per project: the version list, the
build list for one version, and the download descriptor for one build.  Each
fetch issues a single GET, refuses non-success statuses with a bounded body
preview, and decodes the body with pydantic so a changed payload shape is
reported instead of surfacing as a ``KeyError`` deep in the pipeline.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from .errors import CatalogDecodeError, CatalogError, TransportError
from .net import HttpTransport, validate_url_security
from .settings import HttpSettings

LOGGER = logging.getLogger("PaperLaunch.ArtifactDownload.catalog")

RecordT = TypeVar("RecordT", bound=BaseModel)


class ProjectVersions(BaseModel):
    """``GET {base}`` payload; the last version is the newest."""

    versions: List[str]


class BuildEntry(BaseModel):
    build: int = Field(ge=0)


class BuildList(BaseModel):
    """``GET {base}/versions/{v}/builds`` payload; the last build is the newest."""

    builds: List[BuildEntry]


class ApplicationDownload(BaseModel):
    name: str = Field(min_length=1)


class Downloads(BaseModel):
    application: ApplicationDownload


class DownloadInfo(BaseModel):
    """``GET {base}/versions/{v}/builds/{b}`` payload."""

    downloads: Downloads


def _preview(text: str, limit: int) -> str:
    return text[:limit]


class CatalogClient:
    """Fetch and decode catalog documents over a shared :class:`HttpTransport`."""

    def __init__(
        self,
        transport: HttpTransport,
        settings: Optional[HttpSettings] = None,
    ) -> None:
        self.transport = transport
        self.settings = settings or transport.settings
        self.base_url = self.settings.catalog_base_url

    # -- URL construction -------------------------------------------------------

    def _version_url(self, version: str) -> str:
        return f"{self.base_url}/versions/{quote(version, safe='')}"

    def builds_url(self, version: str) -> str:
        return f"{self._version_url(version)}/builds"

    def build_url(self, version: str, build: int) -> str:
        return f"{self.builds_url(version)}/{build}"

    def download_url(self, version: str, build: int, filename: str) -> str:
        """Return the artifact URL for ``filename`` within ``version``/``build``."""

        return f"{self.build_url(version, build)}/downloads/{quote(filename, safe='')}"

    # -- Request helpers --------------------------------------------------------

    def _get_text(self, url: str, context: str) -> str:
        validate_url_security(url)
        client = self.transport.get_client()
        try:
            response = client.get(url)
        except httpx.TransportError as exc:
            LOGGER.error(
                "catalog request failed",
                extra={"stage": "catalog", "url": url, "error": str(exc)},
            )
            raise TransportError(f"Failed to fetch {context} from {url}: {exc}") from exc

        if not response.is_success:
            body = response.text
            raise CatalogError(
                f"API returned status {response.status_code} for {context}: "
                f"{_preview(body, self.settings.error_preview_chars)}",
                status_code=response.status_code,
            )
        return response.text

    def _decode(self, text: str, model: Type[RecordT], context: str) -> RecordT:
        try:
            return model.model_validate_json(text)
        except PydanticValidationError as exc:
            LOGGER.warning(
                "Failed to parse %s JSON. Response: %s",
                context,
                _preview(text, self.settings.log_preview_chars),
                extra={"stage": "catalog"},
            )
            raise CatalogDecodeError(
                f"Failed to parse {context} JSON. API may have changed."
            ) from exc

    # -- Public API -------------------------------------------------------------

    def fetch_project(self) -> ProjectVersions:
        text = self._get_text(self.base_url, "project info")
        return self._decode(text, ProjectVersions, "project")

    def fetch_builds(self, version: str) -> BuildList:
        text = self._get_text(self.builds_url(version), f"builds of version {version}")
        return self._decode(text, BuildList, "builds")

    def fetch_download_info(self, version: str, build: int) -> DownloadInfo:
        text = self._get_text(self.build_url(version, build), f"download info for build {build}")
        return self._decode(text, DownloadInfo, "download")


__all__ = [
    "ApplicationDownload",
    "BuildEntry",
    "BuildList",
    "CatalogClient",
    "DownloadInfo",
    "Downloads",
    "ProjectVersions",
]
