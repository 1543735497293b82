from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from adapters.filesystem.block_repository import FileSystemBlockRepository
from adapters.filesystem.block_utils import assign_permanent_ids, document_filename, loads_blocks
from domain.errors import MalformedImportError, PersistenceError
from tests.helpers.block_fixtures import grid_layout, make_block


def test_save_then_load_round_trip(tmp_path: Path) -> None:
    repository = FileSystemBlockRepository(tmp_path / "documents")
    blocks = [
        make_block(1, 0, document_id="review-1"),
        make_block(-1, 1, layout=grid_layout("row_a", 0), document_id="review-1"),
    ]

    persisted = repository.save("review-1", blocks)

    assert [block.id for block in persisted] == [1, 2]
    loaded = repository.load("review-1")
    assert [block.model_dump() for block in loaded] == [block.model_dump() for block in persisted]
    raw = orjson.loads((tmp_path / "documents" / "review-1.json").read_bytes())
    assert raw[1]["layout"]["rowId"] == "row_a"
    assert repository.list_documents() == ["review-1"]


def test_ids_continue_after_stored_blocks(tmp_path: Path) -> None:
    repository = FileSystemBlockRepository(tmp_path)
    repository.save("doc", [make_block(5, 0)])

    persisted = repository.save("doc", [make_block(5, 0), make_block(-3, 1)])

    assert [block.id for block in persisted] == [5, 6]


def test_load_missing_document_raises_file_not_found(tmp_path: Path) -> None:
    repository = FileSystemBlockRepository(tmp_path)

    with pytest.raises(FileNotFoundError):
        repository.load("absent")
    assert repository.list_documents() == []


def test_load_rejects_corrupt_file(tmp_path: Path) -> None:
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    repository = FileSystemBlockRepository(tmp_path)

    with pytest.raises(MalformedImportError, match="invalid JSON"):
        repository.load("broken")


def test_write_failure_becomes_persistence_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    repository = FileSystemBlockRepository(blocker)

    with pytest.raises(PersistenceError):
        repository.save("doc", [make_block(1, 0)])


@pytest.mark.parametrize("document_id", ["", "../escape", "a/b", ".hidden"])
def test_document_filename_rejects_unsafe_ids(document_id: str) -> None:
    with pytest.raises(ValueError):
        document_filename(document_id)


def test_assign_permanent_ids_keeps_string_and_positive_ids() -> None:
    blocks = [make_block("intro", 0), make_block(-2, 1), make_block(3, 2), make_block(-1, 3)]

    assigned = assign_permanent_ids(blocks)

    assert [block.id for block in assigned] == ["intro", 4, 3, 5]


def test_loads_blocks_accepts_envelope_bytes() -> None:
    raw = orjson.dumps({"version": "2.0", "blocks": [{"id": 1, "type": "divider", "payload": {}}]})

    (block,) = loads_blocks(raw, "doc")

    assert block.type == "divider"
    assert block.document_id == "doc"
