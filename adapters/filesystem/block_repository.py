from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from filelock import FileLock

from adapters.filesystem.block_utils import (
    assign_permanent_ids,
    document_filename,
    dumps_blocks,
    loads_blocks,
)
from adapters.filesystem.json_utils import write_bytes_atomic
from domain.errors import PersistenceError
from domain.models import Block
from domain.ports.repositories import BlockRepository


class FileSystemBlockRepository(BlockRepository):
    def __init__(self, directory: Path) -> None:
        self._directory = directory

    def path_for(self, document_id: str) -> Path:
        return self._directory / document_filename(document_id)

    def load(self, document_id: str) -> list[Block]:
        path = self.path_for(document_id)
        if not path.exists():
            raise FileNotFoundError(path)
        return loads_blocks(path.read_bytes(), document_id)

    def save(self, document_id: str, blocks: Sequence[Block]) -> list[Block]:
        path = self.path_for(document_id)
        lock_path = path.with_suffix(f"{path.suffix}.lock")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with FileLock(str(lock_path)):
                persisted = assign_permanent_ids(blocks, self._stored_blocks(path, document_id))
                write_bytes_atomic(path, dumps_blocks(persisted))
        except OSError as exc:
            msg = f"Could not write document {document_id}: {exc}"
            raise PersistenceError(msg) from exc
        return persisted

    def list_documents(self) -> list[str]:
        if not self._directory.exists():
            return []
        return sorted(path.stem for path in self._directory.glob("*.json"))

    def _stored_blocks(self, path: Path, document_id: str) -> list[Block]:
        if not path.exists():
            return []
        return loads_blocks(path.read_bytes(), document_id)
