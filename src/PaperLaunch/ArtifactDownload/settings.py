# === NAVMAP v1 ===
# {
#   "module": "PaperLaunch.ArtifactDownload.settings",
#   "purpose": "Define configuration models, environment overrides, and YAML loading for the launcher",
#   "sections": [
#     {"id": "constants", "name": "Constants", "anchor": "CONST", "kind": "constants"},
#     {"id": "models", "name": "Configuration models", "anchor": "MOD", "kind": "api"},
#     {"id": "env", "name": "Environment overrides", "anchor": "ENV", "kind": "helpers"},
#     {"id": "loading", "name": "Loading & validation", "anchor": "LOAD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models and loaders for the Paper server launcher.

Settings are grouped into small pydantic sections (HTTP, download, artifact
naming, server sizing, logging) under :class:`LauncherConfig`.  A YAML file
provides the base values; a fixed table of environment variables may then
override individual fields before the final model is validated.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import UserConfigError

LOGGER = logging.getLogger("PaperLaunch.ArtifactDownload.settings")

# --- Constants -----------------------------------------------------------------

CONFIG_FILE = "paperlaunch.yaml"
DEFAULT_VERSION = "latest"
MAX_RAM_LIMIT_GB = 32
LOG_DIR = Path.home() / ".paperlaunch" / "logs"

CONFIG_EXAMPLE = """\
# Paper server launcher configuration
# Edit this file to customize server settings.

server:
  # Minecraft version (use "latest" for the newest version in the catalog)
  minecraft_version: latest
  # Check the catalog for a newer build on startup
  # true: download new builds automatically
  # false: ask before updating
  auto_update: false
  # Minimum heap in GB
  min_ram: 2
  # Maximum heap in GB (auto-adjusted from system RAM at launch)
  max_ram: 4
  # Use the Z garbage collector instead of G1 (Java 21+, suits large heaps)
  use_zgc: false
  server_args:
    - nogui
  # Working directory (optional, defaults to the current directory)
  # work_dir: ./server
"""


# --- Configuration models ------------------------------------------------------


class HttpSettings(BaseModel):
    """Catalog endpoint and HTTP client settings."""

    catalog_base_url: str = Field(
        default="https://api.papermc.io/v2/projects/paper",
        description="Base URL of the release catalog project endpoint",
    )
    timeout_sec: float = Field(default=30.0, gt=0.0, le=600.0)
    user_agent: str = Field(default="PaperLaunch/0.1 (+https://papermc.io)")
    error_preview_chars: int = Field(default=200, ge=0)
    log_preview_chars: int = Field(default=500, ge=0)

    model_config = {"validate_assignment": True}

    @field_validator("catalog_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Store the base URL without a trailing slash."""

        return value.rstrip("/")


class DownloadSettings(BaseModel):
    """Streaming buffer and progress reporting cadence."""

    chunk_size_bytes: int = Field(default=64 * 1024, ge=1024)
    progress_interval_bytes: int = Field(default=1024 * 1024, ge=1)

    model_config = {"validate_assignment": True}


class ArtifactSettings(BaseModel):
    """Local naming convention for discoverable artifacts and sidecars."""

    prefix: str = Field(default="paper-", min_length=1)
    extension: str = Field(default=".jar", min_length=1)
    checksum_suffix: str = Field(default=".sha256", min_length=1)

    model_config = {"validate_assignment": True}

    def matches(self, filename: str) -> bool:
        """Return ``True`` when ``filename`` follows the artifact convention."""

        return filename.startswith(self.prefix) and filename.endswith(self.extension)


class ServerSettings(BaseModel):
    """Server version selection and JVM sizing."""

    minecraft_version: str = Field(default=DEFAULT_VERSION)
    auto_update: bool = Field(
        default=False, description="Replace an outdated local build without asking"
    )
    min_ram: int = Field(default=2, description="Minimum heap in GB")
    max_ram: int = Field(default=4, description="Maximum heap in GB")
    use_zgc: bool = Field(default=False, description="Launch with ZGC instead of G1")
    server_args: List[str] = Field(default_factory=lambda: ["nogui"])
    work_dir: Optional[Path] = None

    model_config = {"validate_assignment": True}

    @model_validator(mode="after")
    def check_limits(self) -> "ServerSettings":
        """Enforce the launcher's sizing rules."""

        if not self.minecraft_version.strip():
            raise ValueError(
                "minecraft_version cannot be empty. Please specify a version or use 'latest'."
            )
        if self.min_ram <= 0:
            raise ValueError(f"min_ram must be greater than 0. Current value: {self.min_ram}")
        if self.min_ram > self.max_ram:
            raise ValueError(
                f"min_ram ({self.min_ram}) cannot be greater than max_ram ({self.max_ram})"
            )
        if self.max_ram > MAX_RAM_LIMIT_GB:
            raise ValueError(
                f"max_ram ({self.max_ram}) exceeds the maximum allowed value ({MAX_RAM_LIMIT_GB}GB)"
            )
        return self


class LoggingConfiguration(BaseModel):
    """Logging-related configuration."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=20, gt=0)
    retention_days: int = Field(default=14, ge=1)

    model_config = {"validate_assignment": True}

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {sorted(valid_levels)}")
        return upper


class LauncherConfig(BaseModel):
    """Root configuration for one launcher invocation."""

    http: HttpSettings = Field(default_factory=HttpSettings)
    download: DownloadSettings = Field(default_factory=DownloadSettings)
    artifact: ArtifactSettings = Field(default_factory=ArtifactSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)
    auto_created: bool = Field(default=False, exclude=True)

    model_config = {"extra": "forbid"}

    def work_directory(self) -> Path:
        """Return the directory artifacts are discovered in and written to."""

        return Path(self.server.work_dir) if self.server.work_dir else Path(".")


# --- Environment overrides -----------------------------------------------------


class EnvironmentOverrides(BaseSettings):
    """Raw environment values; parsing happens through :data:`ENV_OVERRIDE_TABLE`."""

    minecraft_version: Optional[str] = Field(default=None, alias="MINECRAFT_VERSION")
    min_ram: Optional[str] = Field(default=None, alias="MIN_RAM")
    max_ram: Optional[str] = Field(default=None, alias="MAX_RAM")
    work_dir: Optional[str] = Field(default=None, alias="WORK_DIR")
    log_level: Optional[str] = Field(default=None, alias="PAPERLAUNCH_LOG_LEVEL")

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")


def _parse_int(raw: str) -> int:
    return int(raw.strip())


def _parse_text(raw: str) -> str:
    return raw.strip()


def _parse_path(raw: str) -> Path:
    return Path(raw.strip()).expanduser()


# env field -> (config section, section field, parser)
ENV_OVERRIDE_TABLE: Dict[str, Tuple[str, str, Callable[[str], object]]] = {
    "minecraft_version": ("server", "minecraft_version", _parse_text),
    "min_ram": ("server", "min_ram", _parse_int),
    "max_ram": ("server", "max_ram", _parse_int),
    "work_dir": ("server", "work_dir", _parse_path),
    "log_level": ("logging", "level", _parse_text),
}


def apply_env_overrides(
    raw_config: Mapping[str, object], env: Optional[EnvironmentOverrides] = None
) -> Dict[str, object]:
    """Return a copy of ``raw_config`` with environment overrides merged in."""

    env = env or EnvironmentOverrides()
    merged: Dict[str, object] = {
        key: dict(value) if isinstance(value, Mapping) else value
        for key, value in raw_config.items()
    }
    for env_field, (section, field, parser) in ENV_OVERRIDE_TABLE.items():
        raw = getattr(env, env_field)
        if raw is None or not raw.strip():
            continue
        alias = EnvironmentOverrides.model_fields[env_field].alias
        try:
            value = parser(raw)
        except ValueError:
            LOGGER.warning(
                "Failed to parse %s from environment variable %s. Using configured value.",
                field,
                alias,
                extra={"stage": "config"},
            )
            continue
        target = merged.setdefault(section, {})
        if not isinstance(target, dict):
            raise UserConfigError(f"'{section}' section must be a mapping")
        target[field] = value
        LOGGER.info("Config overridden: %s=%s", field, value, extra={"stage": "config"})
    return merged


# --- Loading & validation ------------------------------------------------------


def build_config(raw_config: Mapping[str, object], *, auto_created: bool = False) -> LauncherConfig:
    """Validate ``raw_config`` (after env overrides) into a :class:`LauncherConfig`."""

    merged = apply_env_overrides(raw_config)
    try:
        config = LauncherConfig.model_validate(merged)
    except PydanticValidationError as exc:
        messages = []
        for error in exc.errors():
            location = " -> ".join(str(part) for part in error["loc"]) or "config"
            messages.append(f"{location}: {error['msg']}")
        raise UserConfigError(
            "Configuration validation failed:\n  " + "\n  ".join(messages)
        ) from exc
    config.auto_created = auto_created
    return config


def load_raw_yaml(config_path: Path) -> Mapping[str, object]:
    """Read a YAML configuration file and return its top-level mapping."""

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise UserConfigError(f"Failed to read {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise UserConfigError(f"Configuration file '{config_path}' contains invalid YAML") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise UserConfigError("Configuration file must contain a mapping at the root")
    return data


def load_config(config_path: Optional[Path] = None) -> LauncherConfig:
    """Load configuration, writing an annotated example when none exists yet."""

    path = Path(config_path or CONFIG_FILE).expanduser()
    if path.exists():
        return build_config(load_raw_yaml(path))

    try:
        path.write_text(CONFIG_EXAMPLE, encoding="utf-8")
    except OSError as exc:
        raise UserConfigError(f"Failed to create {path}: {exc}") from exc
    LOGGER.info("created default configuration", extra={"stage": "config", "path": str(path)})
    return build_config(load_raw_yaml(path), auto_created=True)


def remove_auto_created_config(config: LauncherConfig, config_path: Optional[Path] = None) -> bool:
    """Delete the example config written by :func:`load_config`, if it was ours."""

    if not config.auto_created:
        return False
    path = Path(config_path or CONFIG_FILE).expanduser()
    if not path.exists():
        return False
    path.unlink()
    LOGGER.info("removed auto-created configuration", extra={"stage": "config", "path": str(path)})
    return True


def default_log_dir() -> Path:
    """Return the log directory honouring ``PAPERLAUNCH_LOG_DIR``."""

    env_value = os.environ.get("PAPERLAUNCH_LOG_DIR", "").strip()
    return Path(env_value).expanduser() if env_value else LOG_DIR


__all__ = [
    "CONFIG_FILE",
    "DEFAULT_VERSION",
    "ENV_OVERRIDE_TABLE",
    "ArtifactSettings",
    "DownloadSettings",
    "EnvironmentOverrides",
    "HttpSettings",
    "LauncherConfig",
    "LoggingConfiguration",
    "ServerSettings",
    "apply_env_overrides",
    "build_config",
    "default_log_dir",
    "load_config",
    "load_raw_yaml",
    "remove_auto_created_config",
]
