from __future__ import annotations

from collections.abc import Sequence

from adapters.filesystem.block_repository import FileSystemBlockRepository
from adapters.s3.block_repository import S3BlockRepository
from app.config import AppSettings
from domain.models import Block
from domain.ports.repositories import BlockRepository
from domain.services.block_store import BlockStore
from domain.services.drag_drop import DragDropEngine
from domain.services.editor_session import EditorSession, EditorSessionRegistry


def build_block_repository(settings: AppSettings) -> BlockRepository:
    storage = settings.storage
    if storage.backend == "s3":
        if not storage.s3.bucket:
            msg = "storage.s3.bucket is required when backend is s3"
            raise ValueError(msg)
        return S3BlockRepository.from_settings(storage.s3)
    return FileSystemBlockRepository(storage.documents_dir)


def build_session(
    settings: AppSettings,
    repository: BlockRepository,
    document_id: str,
    blocks: Sequence[Block],
) -> EditorSession:
    editor = settings.editor
    store = BlockStore(document_id, blocks, history_limit=editor.history_limit)
    engine = DragDropEngine(
        store,
        settle_seconds=editor.hover_settle_seconds,
        leave_seconds=editor.hover_leave_seconds,
    )
    return EditorSession(document_id, store, repository, drag_engine=engine)


def build_session_registry(
    settings: AppSettings, repository: BlockRepository | None = None
) -> EditorSessionRegistry:
    repository = repository or build_block_repository(settings)
    return EditorSessionRegistry(
        repository=repository,
        factory=lambda document_id, blocks: build_session(
            settings, repository, document_id, blocks
        ),
    )
