"""
Artifact Download Utilities

This module streams server artifacts to disk with bounded memory use and
periodic progress reporting.  Bytes are written to a ``.part`` file next to
the destination and renamed into place only after the transfer completed (and
matched ``Content-Length`` when the server sent one), so an existing
destination always holds a complete transfer.
"""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import httpx

from .errors import DownloadFailure, StorageError
from .net import HttpTransport, validate_url_security
from .settings import DownloadSettings

LOGGER = logging.getLogger("PaperLaunch.ArtifactDownload.download")

PART_SUFFIX = ".part"

ProgressCallback = Callable[[int, Optional[int]], None]


@dataclass(slots=True)
class DownloadResult:
    """Result metadata for a download request.

    Attributes:
        path: Final file path of the artifact.
        status: ``fresh`` when bytes were transferred, ``existing`` when the
            destination was already present.
        bytes_written: Number of bytes transferred in this call.

    Examples:
        >>> DownloadResult(Path("paper.jar"), "existing", 0).status
        'existing'
    """

    path: Path
    status: str
    bytes_written: int


def sanitize_filename(filename: str) -> str:
    """Sanitize filenames to prevent directory traversal and unsafe characters.

    Args:
        filename: Candidate filename provided by the catalog.

    Returns:
        Safe filename compatible with local filesystem storage.
    """

    original = filename
    safe = filename.replace(os.sep, "_").replace("/", "_").replace("\\", "_")
    safe = re.sub(r"[^A-Za-z0-9._+-]", "_", safe)
    safe = safe.strip("._") or "artifact"
    if len(safe) > 255:
        safe = safe[:255]
    if safe != original:
        LOGGER.warning(
            "sanitized unsafe filename",
            extra={"stage": "sanitize", "original": original, "sanitized": safe},
        )
    return safe


def _content_length(response: httpx.Response) -> Optional[int]:
    header = response.headers.get("Content-Length")
    if not header:
        return None
    try:
        return int(header)
    except ValueError:
        return None


class Downloader:
    """Stream artifacts over the shared transport into local files."""

    def __init__(
        self,
        transport: HttpTransport,
        settings: Optional[DownloadSettings] = None,
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.transport = transport
        self.settings = settings or DownloadSettings()
        self.progress = progress

    def _report(self, done: int, total: Optional[int]) -> None:
        LOGGER.info(
            "download progress",
            extra={
                "stage": "download",
                "progress": {"bytes_downloaded": done, "total_bytes": total},
            },
        )
        if self.progress is not None:
            self.progress(done, total)

    def download(self, url: str, destination: Path) -> DownloadResult:
        """Download ``url`` to ``destination`` unless it already exists.

        Args:
            url: HTTPS URL of the artifact.
            destination: Final file path.

        Returns:
            DownloadResult describing what happened.

        Raises:
            PolicyError: If ``url`` is not HTTPS.
            DownloadFailure: On HTTP errors, transport errors, or truncation.
            StorageError: If the local file cannot be written.
        """

        destination = Path(destination)
        if destination.exists():
            LOGGER.info(
                "destination already present, skipping download",
                extra={"stage": "download", "path": str(destination)},
            )
            return DownloadResult(path=destination, status="existing", bytes_written=0)

        validate_url_security(url)
        part_path = destination.with_name(destination.name + PART_SUFFIX)
        start = time.monotonic()
        try:
            written = self._stream_to(url, destination, part_path)
        except BaseException:
            part_path.unlink(missing_ok=True)
            raise

        try:
            os.replace(part_path, destination)
        except OSError as exc:
            part_path.unlink(missing_ok=True)
            raise StorageError(
                f"Failed to move {part_path} into place at {destination}: {exc}",
                path=destination,
            ) from exc

        LOGGER.info(
            "download complete",
            extra={
                "stage": "download",
                "url": url,
                "path": str(destination),
                "bytes": written,
                "elapsed_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return DownloadResult(path=destination, status="fresh", bytes_written=written)

    def _stream_to(self, url: str, destination: Path, part_path: Path) -> int:
        client = self.transport.get_client()
        chunk_size = self.settings.chunk_size_bytes
        interval = self.settings.progress_interval_bytes
        try:
            with client.stream("GET", url) as response:
                if not response.is_success:
                    raise DownloadFailure(
                        f"Failed to download from {url}: HTTP {response.status_code}",
                        url=url,
                        destination=destination,
                        status_code=response.status_code,
                    )
                total = _content_length(response)
                written = 0
                last_report = 0
                self._report(0, total)
                try:
                    part_path.parent.mkdir(parents=True, exist_ok=True)
                    with part_path.open("wb", buffering=chunk_size) as handle:
                        for chunk in response.iter_bytes(chunk_size):
                            handle.write(chunk)
                            written += len(chunk)
                            if written - last_report >= interval:
                                self._report(written, total)
                                last_report = written
                except OSError as exc:
                    LOGGER.error(
                        "filesystem error during download",
                        extra={"stage": "download", "path": str(part_path), "error": str(exc)},
                    )
                    raise StorageError(
                        f"Failed to write download to {part_path}: {exc}", path=part_path
                    ) from exc
                # Content-Length is measured in encoded (on-the-wire) bytes.
                received = response.num_bytes_downloaded
        except httpx.HTTPError as exc:
            LOGGER.error(
                "download request failed",
                extra={"stage": "download", "url": url, "error": str(exc)},
            )
            raise DownloadFailure(
                f"Failed to download from {url} to {destination}: {exc}",
                url=url,
                destination=destination,
            ) from exc

        if written != last_report:
            self._report(written, total)
        if total is not None and received != total:
            raise DownloadFailure(
                f"Incomplete download from {url} to {destination}: "
                f"expected {total} bytes, received {received}",
                url=url,
                destination=destination,
            )
        return written


__all__ = ["DownloadResult", "Downloader", "ProgressCallback", "sanitize_filename"]
