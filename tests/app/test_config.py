from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from adapters.filesystem.block_repository import FileSystemBlockRepository
from adapters.s3.block_repository import S3BlockRepository
from app.config import AppSettings, EditorSettings, StorageSettings, load_settings
from app.wiring import build_block_repository, build_session_registry


def test_defaults_without_config_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)

    settings = load_settings()

    assert settings.editor.default_gap == 4
    assert settings.editor.max_grid_columns == 4
    assert settings.editor.hover_settle_seconds == pytest.approx(0.05)
    assert settings.storage.backend == "filesystem"


def test_yaml_file_and_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_path = tmp_path / "editor.yaml"
    config_path.write_text(
        "editor:\n  default_gap: 6\n  history_limit: 5\nstorage:\n  documents_dir: stored\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("REVIEW_CONFIG_PATH", str(config_path))
    monkeypatch.setenv("REVIEW_EDITOR__HISTORY_LIMIT", "9")

    settings = load_settings()

    assert settings.editor.default_gap == 6
    assert settings.editor.history_limit == 9
    assert settings.storage.documents_dir == Path("stored")


def test_missing_config_file_is_reported(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="Config file not found"):
        load_settings(tmp_path / "absent.yaml")


def test_s3_backend_requires_bucket(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("REVIEW_STORAGE__BACKEND", "S3")

    with pytest.raises(ValueError, match="bucket"):
        load_settings()


def test_wiring_picks_repository_for_backend(app_settings: AppSettings) -> None:
    assert isinstance(build_block_repository(app_settings), FileSystemBlockRepository)

    s3_app_settings = app_settings.model_copy(
        update={"storage": app_settings.storage.model_copy(update={"backend": "s3"})}
    )
    assert isinstance(build_block_repository(s3_app_settings), S3BlockRepository)


def test_session_registry_applies_editor_settings(app_settings: AppSettings) -> None:
    registry = build_session_registry(app_settings)

    session = registry.open("fresh")

    assert len(session.store) == 0
    for _ in range(25):
        session.store.add("paragraph")
    undone = 0
    while session.store.undo():
        undone += 1
    assert undone == app_settings.editor.history_limit


def test_storage_backend_is_normalized() -> None:
    assert StorageSettings(backend=" FileSystem ").backend == "filesystem"  # type: ignore[arg-type]


def test_sample_config_matches_editor_settings() -> None:
    sample = Path(__file__).resolve().parents[2] / "config" / "editor.yaml"

    settings = load_settings(sample)
    raw = yaml.safe_load(sample.read_text(encoding="utf-8"))

    assert set(raw["editor"]) == set(EditorSettings.model_fields)
    assert settings.editor.autosave_interval_seconds == pytest.approx(30.0)
