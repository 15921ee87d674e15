"""Structured logging helpers shared across launcher components."""

from __future__ import annotations

import gzip
import json
import logging
import re
import shutil
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional

from .settings import default_log_dir

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging"]

ROOT_LOGGER_NAME = "PaperLaunch.ArtifactDownload"
MASK = "***masked***"
SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "secret", "password"}
_ROTATED_LOG = re.compile(r".+\.jsonl(?:\.\d+)?")

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with common secret fields masked."""

    def _mask(value: object, key_hint: Optional[str] = None) -> object:
        if key_hint is not None and key_hint.lower() in SENSITIVE_KEYS:
            return MASK
        if isinstance(value, dict):
            return {key: _mask(sub, str(key)) for key, sub in value.items()}
        if isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], str):
            # header-style (name, value) pair
            return (value[0], _mask(value[1], value[0]))
        if isinstance(value, (list, tuple)):
            return [_mask(item) for item in value]
        if isinstance(value, str) and re.search(r"(?i)(apikey|access_token)=", value):
            return MASK
        return value

    return {key: _mask(value, key) for key, value in payload.items()}


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stage": getattr(record, "stage", None),
        }
        for key, value in vars(record).items():
            if key in _RESERVED_ATTRS or key in payload:
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def _compress_old_log(path: Path) -> Path:
    """Gzip ``path`` next to itself, drop the original, and return the archive path."""

    archive = path.with_name(path.name + ".gz")
    with path.open("rb") as source, gzip.open(archive, "wb") as target:
        shutil.copyfileobj(source, target)
    path.unlink(missing_ok=True)
    return archive


def _age(path: Path, now: datetime) -> timedelta:
    return now - datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def _cleanup_logs(log_dir: Path, retention_days: int) -> List[str]:
    """Compress logs older than the retention window and purge expired archives.

    Both the daily ``*.jsonl`` files and the size-rotated backups
    (``*.jsonl.1`` ... ``*.jsonl.N``) are compressed. Archives are removed
    once they are older than twice the retention window.
    """

    actions: List[str] = []
    now = datetime.now(timezone.utc)
    retention_delta = timedelta(days=retention_days)
    for file in sorted(log_dir.glob("*.jsonl*")):
        if not _ROTATED_LOG.fullmatch(file.name) or not file.is_file():
            continue
        if _age(file, now) > retention_delta:
            archive = _compress_old_log(file)
            actions.append(f"Compressed {file.name} -> {archive.name}")
    for file in sorted(log_dir.glob("*.jsonl*.gz")):
        if _age(file, now) > retention_delta * 2:
            file.unlink(missing_ok=True)
            actions.append(f"Deleted expired archive {file.name}")
    return actions


def setup_logging(
    *,
    level: str = "INFO",
    retention_days: int = 14,
    max_log_size_mb: int = 20,
    log_dir: Optional[Path] = None,
    propagate: bool = False,
    console: bool = True,
) -> logging.Logger:
    """Configure launcher logging with a console handler and rotating JSON file.

    Calling this again replaces the handlers installed by an earlier call.
    """

    resolved_dir = Path(log_dir) if log_dir is not None else default_log_dir()
    resolved_dir.mkdir(parents=True, exist_ok=True)
    _cleanup_logs(resolved_dir, retention_days)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_paperlaunch_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler):
                stream = getattr(handler, "stream", None)
                if stream in (sys.stdout, sys.stderr):
                    continue
            handler.close()

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        stream_handler._paperlaunch_managed = True  # type: ignore[attr-defined]
        logger.addHandler(stream_handler)

    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    file_handler = RotatingFileHandler(
        resolved_dir / f"paperlaunch-{today}.jsonl",
        maxBytes=int(max_log_size_mb * 1024 * 1024),
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(JSONFormatter())
    file_handler._paperlaunch_managed = True  # type: ignore[attr-defined]
    logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
