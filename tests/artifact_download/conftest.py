"""Shared fixtures for the artifact_download test suite."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Mapping, Optional

import pytest

from PaperLaunch.ArtifactDownload.settings import LauncherConfig
from PaperLaunch.ArtifactDownload.testing import FakeCatalog, catalog_transport, jar_bytes

_ENV_VARS = (
    "MINECRAFT_VERSION",
    "MIN_RAM",
    "MAX_RAM",
    "WORK_DIR",
    "PAPERLAUNCH_LOG_LEVEL",
    "PAPERLAUNCH_CONFIG",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep env overrides and log files from leaking between tests."""

    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PAPERLAUNCH_LOG_DIR", str(tmp_path / "logs"))
    yield
    logger = logging.getLogger("PaperLaunch.ArtifactDownload")
    for handler in list(logger.handlers):
        if getattr(handler, "_paperlaunch_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def make_jar(tmp_path) -> Callable[..., Path]:
    """Write a small archive into ``tmp_path`` and return its path."""

    def _make(
        name: str = "paper-1.21.1-100.jar",
        entries: Optional[Mapping[str, bytes]] = None,
        directory: Optional[Path] = None,
    ) -> Path:
        path = (directory or tmp_path) / name
        path.write_bytes(jar_bytes(entries))
        return path

    return _make


@pytest.fixture
def catalog() -> FakeCatalog:
    fake = FakeCatalog()
    fake.add_build("1.20.6", 150)
    fake.add_build("1.21.1", 99)
    fake.add_build("1.21.1", 100)
    return fake


@pytest.fixture
def transport(catalog):
    http = catalog_transport(catalog)
    yield http
    http.close()


@pytest.fixture
def config(tmp_path) -> LauncherConfig:
    cfg = LauncherConfig()
    cfg.server.work_dir = tmp_path
    return cfg
