"""Configuration loading, validation, and environment overrides."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from PaperLaunch.ArtifactDownload.errors import ConfigError, UserConfigError
from PaperLaunch.ArtifactDownload.settings import (
    CONFIG_EXAMPLE,
    LauncherConfig,
    apply_env_overrides,
    build_config,
    default_log_dir,
    load_config,
    remove_auto_created_config,
)


def test_defaults():
    config = LauncherConfig()

    assert config.server.minecraft_version == "latest"
    assert (config.server.min_ram, config.server.max_ram) == (2, 4)
    assert config.server.server_args == ["nogui"]
    assert config.server.auto_update is False
    assert config.server.use_zgc is False
    assert config.http.timeout_sec == 30.0
    assert config.work_directory() == Path(".")


def test_config_error_alias():
    assert ConfigError is UserConfigError


@pytest.mark.parametrize(
    ("server", "fragment"),
    [
        ({"minecraft_version": "  "}, "minecraft_version cannot be empty"),
        ({"min_ram": 0}, "min_ram must be greater than 0"),
        ({"min_ram": 8, "max_ram": 4}, "cannot be greater than max_ram"),
        ({"max_ram": 33}, "exceeds the maximum allowed value"),
    ],
)
def test_server_rules(server, fragment):
    with pytest.raises(UserConfigError, match=fragment):
        build_config({"server": server})


def test_boundary_values_are_accepted():
    config = build_config({"server": {"min_ram": 32, "max_ram": 32}})

    assert config.server.min_ram == config.server.max_ram == 32


def test_unknown_section_is_rejected():
    with pytest.raises(UserConfigError, match="Extra inputs"):
        build_config({"bogus": {}})


def test_env_overrides_apply(monkeypatch, tmp_path, caplog):
    monkeypatch.setenv("MINECRAFT_VERSION", "1.20.6")
    monkeypatch.setenv("MIN_RAM", "3")
    monkeypatch.setenv("MAX_RAM", " 6 ")
    monkeypatch.setenv("WORK_DIR", str(tmp_path))
    monkeypatch.setenv("PAPERLAUNCH_LOG_LEVEL", "debug")

    caplog.set_level(logging.INFO)
    config = build_config({"server": {"minecraft_version": "1.21.1"}})

    assert config.server.minecraft_version == "1.20.6"
    assert (config.server.min_ram, config.server.max_ram) == (3, 6)
    assert config.work_directory() == tmp_path
    assert config.logging.level == "DEBUG"
    assert any("Config overridden: min_ram=3" in r.getMessage() for r in caplog.records)


def test_unparseable_env_value_keeps_configured_value(monkeypatch, caplog):
    monkeypatch.setenv("MAX_RAM", "lots")

    caplog.set_level(logging.WARNING)
    config = build_config({"server": {"max_ram": 6}})

    assert config.server.max_ram == 6
    assert any("MAX_RAM" in record.getMessage() for record in caplog.records)


def test_empty_env_value_is_ignored(monkeypatch):
    monkeypatch.setenv("MINECRAFT_VERSION", "   ")

    assert apply_env_overrides({}) == {}


def test_load_config_creates_example_when_missing(tmp_path):
    path = tmp_path / "paperlaunch.yaml"

    config = load_config(path)

    assert config.auto_created
    assert path.read_text(encoding="utf-8") == CONFIG_EXAMPLE
    assert remove_auto_created_config(config, path)
    assert not path.exists()


def test_load_config_reads_yaml(tmp_path):
    path = tmp_path / "paperlaunch.yaml"
    path.write_text(
        "server:\n  minecraft_version: 1.20.6\n  auto_update: true\n  max_ram: 8\n"
        "logging:\n  level: warning\n",
        encoding="utf-8",
    )

    config = load_config(path)

    assert not config.auto_created
    assert config.server.minecraft_version == "1.20.6"
    assert config.server.auto_update is True
    assert config.server.max_ram == 8
    assert config.logging.level == "WARNING"
    assert not remove_auto_created_config(config, path)
    assert path.exists()


def test_invalid_yaml_is_reported(tmp_path):
    path = tmp_path / "paperlaunch.yaml"
    path.write_text("server: [unclosed\n", encoding="utf-8")

    with pytest.raises(UserConfigError, match="invalid YAML"):
        load_config(path)


def test_non_mapping_root_is_reported(tmp_path):
    path = tmp_path / "paperlaunch.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(UserConfigError, match="mapping at the root"):
        load_config(path)


def test_log_dir_honours_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("PAPERLAUNCH_LOG_DIR", str(tmp_path / "custom"))

    assert default_log_dir() == tmp_path / "custom"
