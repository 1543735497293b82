from __future__ import annotations

import os
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from app.config import AppSettings, EditorSettings, S3Settings, StorageSettings


def _clear_review_env() -> None:
    for key in list(os.environ):
        if key.startswith("REVIEW_"):
            os.environ.pop(key, None)


_clear_review_env()


@pytest.fixture(autouse=True)
def clear_review_env() -> Generator[None, None, None]:
    _clear_review_env()
    yield
    _clear_review_env()


@pytest.fixture
def s3_settings() -> S3Settings:
    return S3Settings(
        bucket="review-bucket",
        prefix="documents/",
        region="us-east-1",
        endpoint_url="http://stubbed-s3.local",
        access_key_id="test",
        secret_access_key="test",
        session_token=None,
        use_path_style=True,
        max_attempts=1,
    )


@pytest.fixture
def s3_settings_factory(s3_settings: S3Settings) -> Callable[..., S3Settings]:
    def _factory(**overrides: object) -> S3Settings:
        return s3_settings.model_copy(update=overrides)

    return _factory


@pytest.fixture
def editor_settings() -> EditorSettings:
    return EditorSettings(
        title="Test Editor",
        default_gap=4,
        max_grid_columns=4,
        autosave_interval_seconds=0.0,
        hover_settle_seconds=0.0,
        hover_leave_seconds=0.0,
        history_limit=20,
    )


@pytest.fixture
def storage_settings(tmp_path: Path, s3_settings: S3Settings) -> StorageSettings:
    return StorageSettings(
        backend="filesystem",
        documents_dir=tmp_path / "documents",
        s3=s3_settings,
    )


@pytest.fixture
def app_settings(editor_settings: EditorSettings, storage_settings: StorageSettings) -> AppSettings:
    return AppSettings(editor=editor_settings, storage=storage_settings)


@pytest.fixture
def app_settings_factory(
    editor_settings: EditorSettings,
    storage_settings: StorageSettings,
) -> Callable[..., AppSettings]:
    def _factory(**overrides: object) -> AppSettings:
        return AppSettings(editor=editor_settings.model_copy(update=overrides), storage=storage_settings)

    return _factory
