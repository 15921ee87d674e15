"""Process launch helpers for a verified server artifact.

These helpers sit downstream of the acquisition pipeline: they check the Java
runtime, size the heap from system memory, accept the EULA file, and start
the server with the tuned G1 collector flags.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

import psutil

from .errors import LaunchError, StorageError

LOGGER = logging.getLogger("PaperLaunch.ArtifactDownload.launcher")

JAVA_CMD = "java"
MIN_JAVA_VERSION = 17
VERSION_UNKNOWN = "unknown"
BYTES_PER_GB = 1024**3

RAM_LOW_THRESHOLD = 4
RAM_MID_THRESHOLD = 8
RAM_HIGH_THRESHOLD = 16
RAM_DEFAULT_MAX = 8

EULA_FILE = "eula.txt"
EULA_CONTENT = (
    "#By changing the setting below to TRUE you are indicating your agreement to our EULA "
    "(https://aka.ms/MinecraftEULA).\neula=true\n"
)

JAVA_ARGS: List[str] = [
    "-XX:+UseG1GC",
    "-XX:+ParallelRefProcEnabled",
    "-XX:MaxGCPauseMillis=200",
    "-XX:+UnlockExperimentalVMOptions",
    "-XX:+DisableExplicitGC",
    "-XX:+AlwaysPreTouch",
    "-XX:G1NewSizePercent=30",
    "-XX:G1MaxNewSizePercent=40",
    "-XX:G1HeapRegionSize=8M",
    "-XX:G1ReservePercent=20",
    "-XX:G1HeapWastePercent=5",
    "-XX:G1MixedGCCountTarget=4",
    "-XX:InitiatingHeapOccupancyPercent=15",
    "-XX:G1MixedGCLiveThresholdPercent=90",
    "-XX:G1RSetUpdatingPauseTimePercent=5",
    "-XX:SurvivorRatio=32",
    "-XX:+PerfDisableSharedMem",
    "-XX:MaxTenuringThreshold=1",
    "-Dusing.aikars.flags=https://mcflags.emc.gs",
    "-Daikars.new.flags=true",
    "-Dfile.encoding=UTF-8",
]

ZGC_ARGS: List[str] = [
    "-XX:+UseZGC",
    "-XX:+ZGenerational",
    "-XX:+DisableExplicitGC",
    "-XX:+AlwaysPreTouch",
    "-XX:+PerfDisableSharedMem",
    "-Dfile.encoding=UTF-8",
]

ZGC_MIN_HEAP_GB = 4


def _version_from_token(token: str) -> Optional[str]:
    cleaned = ""
    for char in token.strip("\"'"):
        if not (char.isdigit() or char == "."):
            break
        cleaned += char
    if len(cleaned) < 2 or cleaned.startswith(".") or not any(c.isdigit() for c in cleaned):
        return None
    return cleaned


def extract_java_version(output: str) -> str:
    """Pull the version number out of ``java -version`` output.

    Examples:
        >>> extract_java_version('openjdk version "17.0.1" 2021-10-19')
        '17.0.1'
    """

    for line in output.splitlines():
        if "version" not in line.lower():
            continue
        parts = line.split()
        for index, part in enumerate(parts[:-1]):
            if "version" in part.lower():
                found = _version_from_token(parts[index + 1])
                if found:
                    return found
        for part in parts:
            found = _version_from_token(part)
            if found:
                return found
    return VERSION_UNKNOWN


def check_java() -> str:
    """Return the installed Java version, warning when it is too old.

    Raises:
        LaunchError: If no ``java`` executable can be run.
    """

    try:
        completed = subprocess.run(
            [JAVA_CMD, "-version"], capture_output=True, text=True, check=False
        )
    except OSError as exc:
        raise LaunchError(
            "Java is not installed or not in PATH. Please install Java 17 or higher."
        ) from exc

    version = extract_java_version(completed.stderr or completed.stdout)
    major = version.split(".")[0]
    if major.isdigit() and int(major) < MIN_JAVA_VERSION:
        LOGGER.warning(
            "Java version %s detected. Minecraft 1.18+ requires Java %s or higher. "
            "The server may not start correctly.",
            version,
            MIN_JAVA_VERSION,
            extra={"stage": "launch"},
        )
    return version


def total_ram_gb() -> Optional[int]:
    """Return installed memory in whole gigabytes, or ``None`` when unknown."""

    total = psutil.virtual_memory().total // BYTES_PER_GB
    return total if total > 0 else None


def calculate_max_ram(configured_max: int, total_gb: Optional[int], min_ram: int) -> int:
    """Size the maximum heap from system memory; never below ``min_ram``."""

    if total_gb is None:
        max_ram = configured_max // 2
    elif total_gb <= RAM_LOW_THRESHOLD:
        max_ram = max(total_gb // 2, min_ram)
    elif total_gb <= RAM_MID_THRESHOLD:
        max_ram = total_gb // 2
    elif total_gb <= RAM_HIGH_THRESHOLD:
        max_ram = RAM_DEFAULT_MAX
    else:
        max_ram = min(total_gb // 2, RAM_HIGH_THRESHOLD)
    return max(max_ram, min_ram)


def ensure_eula(work_dir: Path) -> Path:
    """Write an accepted ``eula.txt`` unless one already accepts the EULA."""

    path = Path(work_dir) / EULA_FILE
    try:
        if path.exists():
            for line in path.read_text(encoding="utf-8").splitlines():
                stripped = line.strip()
                if not stripped.startswith("#") and "eula=true" in stripped.lower():
                    return path
        path.write_text(EULA_CONTENT, encoding="utf-8")
    except OSError as exc:
        raise StorageError(f"Failed to write {path}: {exc}", path=path) from exc
    LOGGER.info("accepted EULA", extra={"stage": "launch", "path": str(path)})
    return path


def build_server_command(
    jar_file: str,
    min_ram: int,
    max_ram: int,
    server_args: Sequence[str] = (),
    *,
    use_zgc: bool = False,
) -> List[str]:
    return [
        JAVA_CMD,
        f"-Xms{min_ram}G",
        f"-Xmx{max_ram}G",
        *(ZGC_ARGS if use_zgc else JAVA_ARGS),
        "-jar",
        jar_file,
        *server_args,
    ]


def run_server(
    jar_file: str,
    min_ram: int,
    max_ram: int,
    server_args: Sequence[str] = (),
    *,
    cwd: Optional[Path] = None,
    use_zgc: bool = False,
) -> int:
    """Run the server in the foreground and return its exit code.

    Raises:
        LaunchError: If the process cannot be started.
    """

    if use_zgc and max_ram < ZGC_MIN_HEAP_GB:
        LOGGER.warning(
            "ZGC is enabled but max heap is low (< %sGB). G1GC might perform better.",
            ZGC_MIN_HEAP_GB,
            extra={"stage": "launch"},
        )
    command = build_server_command(jar_file, min_ram, max_ram, server_args, use_zgc=use_zgc)
    LOGGER.info(
        "starting server",
        extra={
            "stage": "launch",
            "jar": jar_file,
            "min_ram": min_ram,
            "max_ram": max_ram,
            "gc": "zgc" if use_zgc else "g1",
        },
    )
    try:
        completed = subprocess.run(command, cwd=cwd, check=False)
    except OSError as exc:
        LOGGER.error("Failed to start server: %s", exc, extra={"stage": "launch"})
        raise LaunchError(f"Failed to start server: {exc}") from exc
    if completed.returncode != 0:
        LOGGER.warning(
            "Server stopped with exit code: %s", completed.returncode, extra={"stage": "launch"}
        )
    return completed.returncode


__all__ = [
    "JAVA_ARGS",
    "ZGC_ARGS",
    "build_server_command",
    "calculate_max_ram",
    "check_java",
    "ensure_eula",
    "extract_java_version",
    "run_server",
    "total_ram_gb",
]
