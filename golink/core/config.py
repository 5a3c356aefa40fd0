from __future__ import annotations

import json
import os
from datetime import timedelta
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import (
    BaseSettings,
    InitSettingsSource,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

DEFAULT_DIRECTORY_URL = "https://orgorg.us/api/v1"


def _xdg_dir(env_var: str, fallback: str) -> Path:
    base = os.environ.get(env_var)
    return Path(base) if base else Path.home() / fallback


def default_config_file() -> Path:
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / "golink" / "config.json"


def productivity_config_file() -> Path:
    """Config shared with the other productivity tools (`orgorg_*` keys)."""
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / "productivity" / "config.json"


def default_cache_path() -> Path:
    return _xdg_dir("XDG_CACHE_HOME", ".cache") / "golink" / "directory.json"


class ProductivityConfigSource(InitSettingsSource):
    """Reads `orgorg_api_key` and `orgorg_url_base` from the productivity config.

    Null and missing keys are skipped.
    """

    KEYS = {"orgorg_api_key": "api_key", "orgorg_url_base": "directory_url"}

    def __init__(self, settings_cls: type[BaseSettings], path: Path | None = None) -> None:
        path = path or productivity_config_file()
        data = json.loads(path.read_text(encoding="utf-8")) if path.is_file() else {}
        super().__init__(
            settings_cls,
            init_kwargs={
                field: data[key] for key, field in self.KEYS.items() if data.get(key) is not None
            },
        )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GOLINK_",
        env_file=".env",
        json_file=default_config_file(),
        extra="ignore",
        populate_by_name=True,
    )

    # Directory service
    directory_url: str = DEFAULT_DIRECTORY_URL
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GOLINK_API_KEY", "ORGORG_API_KEY"),
    )

    # Local cache
    cache_path: Path = Field(default_factory=default_cache_path)
    cache_max_age: timedelta = timedelta(hours=24)

    # HTTP fetcher
    http_timeout: float = 10.0
    http_max_retries: int = 2
    http_verify_ssl: bool = True  # set False behind corporate SSL-inspection proxies

    # Matching
    min_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    ambiguity_margin: float = Field(default=0.05, ge=0.0, le=1.0)
    fuzzy_floor: float = Field(default=0.4, ge=0.0, le=1.0)
    max_candidates: int = Field(default=10, ge=1)

    # Logging
    log_level: str = "WARNING"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls),
            ProductivityConfigSource(settings_cls),
            file_secret_settings,
        )


settings = Settings()
