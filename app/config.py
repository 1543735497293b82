from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource, YamlConfigSettingsSource

from domain.models import DEFAULT_GAP
from domain.services.block_store import DEFAULT_HISTORY_LIMIT
from domain.services.drag_drop import DEFAULT_LEAVE_SECONDS, DEFAULT_SETTLE_SECONDS
from domain.services.grid_operations import DEFAULT_MAX_GRID_COLUMNS, MIN_GRID_COLUMNS

DEFAULT_CONFIG_PATH = Path("config/editor.yaml")
CONFIG_PATH_ENV = "REVIEW_CONFIG_PATH"


class S3Settings(BaseModel):
    bucket: str = ""
    prefix: str = ""
    region: str | None = None
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    use_path_style: bool = False
    max_attempts: int = Field(default=3, ge=1)


class StorageSettings(BaseModel):
    backend: Literal["filesystem", "s3"] = "filesystem"
    documents_dir: Path = Path("data/documents")
    s3: S3Settings = S3Settings()

    @field_validator("backend", mode="before")
    @classmethod
    def normalize_backend(cls, value: object) -> str:
        return str(value).strip().lower() if value else "filesystem"


class EditorSettings(BaseModel):
    title: str = "Review Editor"
    default_gap: int = Field(default=DEFAULT_GAP, ge=0)
    max_grid_columns: int = Field(default=DEFAULT_MAX_GRID_COLUMNS, ge=MIN_GRID_COLUMNS)
    autosave_interval_seconds: float = Field(default=30.0, ge=0.0)
    hover_settle_seconds: float = Field(default=DEFAULT_SETTLE_SECONDS, ge=0.0)
    hover_leave_seconds: float = Field(default=DEFAULT_LEAVE_SECONDS, ge=0.0)
    history_limit: int = Field(default=DEFAULT_HISTORY_LIMIT, ge=0)


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REVIEW_", env_nested_delimiter="__")

    editor: EditorSettings = EditorSettings()
    storage: StorageSettings = StorageSettings()

    _yaml_path: ClassVar[Path | None] = None

    @model_validator(mode="after")
    def require_bucket_for_s3(self) -> AppSettings:
        if self.storage.backend == "s3" and not self.storage.s3.bucket:
            msg = "storage.s3.bucket is required when storage.backend is s3"
            raise ValueError(msg)
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ]
        if cls._yaml_path:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=cls._yaml_path))
        return tuple(sources)


def load_settings(config_path: Path | None = None) -> AppSettings:
    env_path = os.getenv(CONFIG_PATH_ENV)
    resolved_path: Path | None = None

    if config_path is not None:
        resolved_path = config_path
    elif env_path:
        resolved_path = Path(env_path)
    elif DEFAULT_CONFIG_PATH.exists():
        resolved_path = DEFAULT_CONFIG_PATH

    previous = AppSettings._yaml_path
    try:
        if resolved_path is not None:
            if not resolved_path.exists():
                msg = f"Config file not found: {resolved_path}"
                raise FileNotFoundError(msg)
            AppSettings._yaml_path = resolved_path
        return AppSettings()
    finally:
        AppSettings._yaml_path = previous
