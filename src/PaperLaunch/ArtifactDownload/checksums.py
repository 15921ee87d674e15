# === NAVMAP v1 ===
# {
#   "module": "PaperLaunch.ArtifactDownload.checksums",
#   "purpose": "Compute, compare, and persist SHA-256 digests for server artifacts",
#   "sections": [
#     {"id": "digest", "name": "Digest value type", "anchor": "DIG", "kind": "api"},
#     {"id": "engine", "name": "Streaming digest & verification", "anchor": "ENG", "kind": "api"},
#     {"id": "store", "name": "Sidecar checksum store", "anchor": "STO", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
"""Checksum computation, verification, and sidecar persistence.

Digests are always computed over the whole file with a streaming SHA-256
accumulator, so multi-hundred-megabyte artifacts never have to be held in
memory.  The verified digest is stored next to the artifact in a plain-text
sidecar (``<artifact>.sha256``) whose first line is the lowercase hex value;
anything else found there is treated as "no recorded digest".
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from .errors import IntegrityError, StorageError

LOGGER = logging.getLogger("PaperLaunch.ArtifactDownload.checksums")

DIGEST_SIZE = 32
HEX_DIGEST_LENGTH = DIGEST_SIZE * 2
SMALL_FILE_THRESHOLD = 64 * 1024
SMALL_BUFFER_SIZE = 8 * 1024
LARGE_BUFFER_SIZE = 64 * 1024
CHECKSUM_SUFFIX = ".sha256"


@dataclass(slots=True, frozen=True)
class Digest:
    """Raw 32-byte SHA-256 value with a canonical lowercase hex form."""

    value: bytes

    def __post_init__(self) -> None:
        if len(self.value) != DIGEST_SIZE:
            raise ValueError(f"digest must be {DIGEST_SIZE} bytes, got {len(self.value)}")

    @classmethod
    def from_hex(cls, text: Optional[str]) -> Optional["Digest"]:
        """Decode ``text`` or return ``None`` unless it is exactly 32 bytes of hex."""

        if text is None:
            return None
        try:
            raw = bytes.fromhex(text.strip())
        except ValueError:
            return None
        if len(raw) != DIGEST_SIZE:
            return None
        return cls(raw)

    def hexdigest(self) -> str:
        return self.value.hex()

    def __str__(self) -> str:
        return self.hexdigest()


def buffer_size_for(file_size: int) -> int:
    """Pick a read buffer; small files get a small buffer, large files a larger one."""

    return SMALL_BUFFER_SIZE if file_size < SMALL_FILE_THRESHOLD else LARGE_BUFFER_SIZE


def digest_stream(stream: BinaryIO, buffer_size: int) -> Digest:
    """Fold every remaining byte of ``stream`` into a SHA-256 digest."""

    hasher = hashlib.sha256()
    for chunk in iter(lambda: stream.read(buffer_size), b""):
        hasher.update(chunk)
    return Digest(hasher.digest())


def digest_file(path: Path) -> Digest:
    """Compute the SHA-256 digest of the entire file at ``path``.

    Args:
        path: File to hash; zero-length files are valid input.

    Returns:
        Digest of the file contents.

    Raises:
        StorageError: If the file cannot be opened or read.
    """

    path = Path(path)
    try:
        with path.open("rb") as stream:
            size = path.stat().st_size
            return digest_stream(stream, buffer_size_for(size))
    except OSError as exc:
        raise StorageError(
            f"Failed to read file for checksum calculation: {path}: {exc}", path=path
        ) from exc


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of ``path``."""

    return digest_file(path).hexdigest()


def verify_file(path: Path, expected: Optional[str]) -> None:
    """Confirm ``path`` hashes to ``expected``.

    No expectation means there is nothing to verify.  An expectation that
    decodes to 32 bytes is compared byte-for-byte; any other text is compared
    case-insensitively against the computed hex digest.

    Raises:
        IntegrityError: If the digest does not match.
    """

    if expected is None:
        return
    path = Path(path)
    actual = digest_file(path)
    wanted = Digest.from_hex(expected)
    if wanted is not None:
        matched = wanted == actual
    else:
        matched = actual.hexdigest().lower() == expected.strip().lower()
    if not matched:
        LOGGER.error(
            "sha256 mismatch detected",
            extra={
                "stage": "checksum",
                "path": str(path),
                "expected": expected,
                "actual": actual.hexdigest(),
            },
        )
        raise IntegrityError(path=path, expected=expected, actual=actual.hexdigest())


class ChecksumStore:
    """Read and write the sidecar digest file kept next to an artifact."""

    def __init__(self, suffix: str = CHECKSUM_SUFFIX) -> None:
        self.suffix = suffix

    def sidecar_for(self, artifact: Path) -> Path:
        artifact = Path(artifact)
        return artifact.with_name(artifact.name + self.suffix)

    def load(self, sidecar: Path) -> Optional[str]:
        """Return the trimmed first line when it has the shape of a hex digest.

        Only the length is checked here; decoding is left to the caller.
        """

        sidecar = Path(sidecar)
        if not sidecar.exists():
            return None
        try:
            content = sidecar.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise StorageError(f"Failed to read checksum file: {sidecar}: {exc}", path=sidecar) from exc
        lines = content.splitlines()
        if not lines:
            return None
        first = lines[0].strip()
        return first if len(first) == HEX_DIGEST_LENGTH else None

    def save(self, sidecar: Path, digest_hex: str) -> None:
        sidecar = Path(sidecar)
        try:
            sidecar.write_text(digest_hex, encoding="utf-8")
        except OSError as exc:
            raise StorageError(
                f"Failed to write checksum file: {sidecar}: {exc}", path=sidecar
            ) from exc
        LOGGER.debug("wrote checksum sidecar", extra={"stage": "checksum", "path": str(sidecar)})


__all__ = [
    "CHECKSUM_SUFFIX",
    "ChecksumStore",
    "Digest",
    "buffer_size_for",
    "digest_file",
    "digest_stream",
    "sha256_file",
    "verify_file",
]
