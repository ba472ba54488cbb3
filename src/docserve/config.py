"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (DOCSERVE__CACHE__ENABLED=true)
  2. docserve.yaml          (searched in cwd, then ~/.config/docserve/)
  3. Hardcoded defaults

The config file is optional: all fields have sensible defaults. The
resulting ``Settings`` object is built once at startup and handed to every
component constructor.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("docserve")


def _data_path(*parts: str) -> str:
    return str(Path(_DEFAULT_DATA_DIR, *parts))


def _find_config_file() -> str | None:
    """Return the path of the first docserve.yaml found, or None."""
    candidates = [
        Path("docserve.yaml"),
        Path.home() / ".config" / "docserve" / "docserve.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ServerSettings(_Section):
    host: str = "0.0.0.0"
    port: int = 8080


class PathSettings(_Section):
    repos_root: str = _data_path("repos")  # one working tree per target name
    docs_root: str = _data_path("docs")  # published SCM docs: <owner>/<name>/<version>
    tmp_root: str = _data_path("tmp")  # failure markers
    public_root: str = _data_path("public")  # render cache, served ahead of the app
    packages_root: str = _data_path("packages")  # unpacked remote packages


class CacheSettings(_Section):
    # None means "decide from the environment" (on for staging/production).
    enabled: bool | None = None


class PackageSettings(_Section):
    manifest_path: str = "remote_packages"
    index_url: str = "https://pypi.org/pypi"
    timeout_seconds: float = 30.0


class CheckoutSettings(_Section):
    max_workers: int = 4
    timeout_seconds: int = 900
    git_command: str = "git"
    svn_command: str = "svn"


class GeneratorSettings(_Section):
    command: list[str] = ["pdoc", "--output-directory", "{output}", "{source}"]
    timeout_seconds: int = 600


class LoggingSettings(_Section):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"
    file: str | None = None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: DOCSERVE__SERVER__PORT=9090
        env_prefix="DOCSERVE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    environment: Literal["development", "test", "staging", "production"] = "development"
    server: ServerSettings = ServerSettings()
    paths: PathSettings = PathSettings()
    cache: CacheSettings = CacheSettings()
    packages: PackageSettings = PackageSettings()
    checkout: CheckoutSettings = CheckoutSettings()
    generator: GeneratorSettings = GeneratorSettings()
    logging: LoggingSettings = LoggingSettings()

    @property
    def caching_enabled(self) -> bool:
        if self.cache.enabled is not None:
            return self.cache.enabled
        return self.environment in ("staging", "production")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
