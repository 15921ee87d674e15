"""Structural validation for server artifacts.

An artifact is a Java archive, which is a ZIP container.  Before it is
trusted we confirm, in order, that the file exists, is non-empty, is at least
as large as an empty ZIP (the 22-byte end-of-central-directory record), starts
with the ``PK`` signature, and parses as an archive holding at least one
entry.  Each failure carries a distinct :class:`ValidationOutcome` so callers
can tell "not downloaded yet" apart from "corrupted" or "wrong file type".
"""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import BinaryIO, Optional

from .checksums import Digest, buffer_size_for, digest_stream
from .errors import ArtifactValidationError, StorageError, ValidationOutcome

LOGGER = logging.getLogger("PaperLaunch.ArtifactDownload.validation")

MIN_ARCHIVE_SIZE = 22
MAGIC_READ_SIZE = 4
ZIP_MAGIC = b"PK"
MANIFEST_ENTRY = "META-INF/MANIFEST.MF"


def _fail(reason: ValidationOutcome, path: Path, message: str) -> ArtifactValidationError:
    return ArtifactValidationError(message, reason=reason, path=path)


def _checked_size(path: Path) -> int:
    if not path.exists():
        raise _fail(ValidationOutcome.NOT_FOUND, path, f"JAR file does not exist: {path}")
    try:
        size = path.stat().st_size
    except OSError as exc:
        raise StorageError(f"Failed to read metadata for {path}: {exc}", path=path) from exc
    if size == 0:
        raise _fail(ValidationOutcome.EMPTY, path, f"JAR file is empty: {path}")
    if size < MIN_ARCHIVE_SIZE:
        raise _fail(
            ValidationOutcome.TOO_SMALL,
            path,
            f"JAR file is too small to be valid ({size} bytes): {path}",
        )
    return size


def _check_magic(stream: BinaryIO, path: Path) -> None:
    magic = stream.read(MAGIC_READ_SIZE)
    if magic[: len(ZIP_MAGIC)] != ZIP_MAGIC:
        raise _fail(
            ValidationOutcome.BAD_MAGIC,
            path,
            f"Invalid JAR file: missing ZIP magic number (expected PK, found "
            f"{magic[:2].hex().upper()}): {path}",
        )


def _check_archive(stream: BinaryIO, path: Path) -> None:
    stream.seek(0)
    try:
        with zipfile.ZipFile(stream) as archive:
            names = archive.namelist()
    except (zipfile.BadZipFile, EOFError, ValueError, NotImplementedError) as exc:
        # ValueError covers undecodable UTF-8 entry names.
        raise _fail(
            ValidationOutcome.CORRUPT_ARCHIVE,
            path,
            f"Failed to parse JAR file as ZIP archive: {exc} (file: {path})",
        ) from exc
    if not names:
        raise _fail(ValidationOutcome.NO_ENTRIES, path, f"JAR file contains no entries: {path}")
    if MANIFEST_ENTRY not in names:
        LOGGER.warning(
            "JAR file missing %s (may still be valid): %s",
            MANIFEST_ENTRY,
            path,
            extra={"stage": "validate", "path": str(path)},
        )


def validate_artifact(path: Path) -> None:
    """Confirm ``path`` is a well-formed archive with at least one entry.

    Raises:
        ArtifactValidationError: With ``reason`` naming the failed check.
        StorageError: If the file cannot be read.
    """

    path = Path(path)
    _checked_size(path)
    try:
        with path.open("rb") as stream:
            _check_magic(stream, path)
            _check_archive(stream, path)
    except OSError as exc:
        raise StorageError(f"Failed to open JAR file: {path}: {exc}", path=path) from exc


def validate_and_digest(path: Path, *, buffer_size: Optional[int] = None) -> Digest:
    """Validate ``path`` and compute its digest while reading the file once.

    The whole file is streamed through the hash; the archive check then only
    needs the central directory at the end of the same open handle.

    Returns:
        Digest of the entire file.
    """

    path = Path(path)
    size = _checked_size(path)
    try:
        with path.open("rb") as stream:
            _check_magic(stream, path)
            stream.seek(0)
            digest = digest_stream(stream, buffer_size or buffer_size_for(size))
            _check_archive(stream, path)
    except OSError as exc:
        raise StorageError(f"Failed to read JAR file: {path}: {exc}", path=path) from exc
    LOGGER.debug(
        "validated artifact",
        extra={"stage": "validate", "path": str(path), "sha256": digest.hexdigest()},
    )
    return digest


__all__ = ["MIN_ARCHIVE_SIZE", "ValidationOutcome", "validate_and_digest", "validate_artifact"]
