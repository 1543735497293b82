from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from domain.models import Block, BlockId, utc_now
from domain.ports.repositories import BlockRepository
from domain.services.block_exchange import import_blocks
from domain.services.block_store import BlockStore
from domain.services.drag_drop import DragDropEngine

logger = logging.getLogger(__name__)

SaveReason = Literal["manual", "autosave"]


@dataclass(frozen=True)
class SaveResult:
    status: Literal["saved", "skipped", "failed"]
    revision: int
    error: str | None = None
    saved_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"

    @property
    def retryable(self) -> bool:
        return self.status == "failed"


class EditorSession:
    """One document being edited: the store, its drag engine and persistence.

    Edits are local and optimistic. Saves are serialized by a lock, so an
    autosave tick that fires while a manual save is running waits for it and
    then finds nothing left to write.
    """

    def __init__(
        self,
        document_id: str,
        store: BlockStore,
        repository: BlockRepository,
        *,
        drag_engine: DragDropEngine | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.document_id = document_id
        self.store = store
        self.drag = drag_engine or DragDropEngine(store)
        self._repository = repository
        self._clock = clock
        self._saved_revision = store.revision
        self._save_lock = asyncio.Lock()
        self._saving = False
        self.last_saved_at: datetime | None = None
        self.last_error: str | None = None

    @property
    def has_unsaved_changes(self) -> bool:
        return self.store.revision != self._saved_revision

    @property
    def is_saving(self) -> bool:
        return self._saving

    async def save(self, reason: SaveReason = "manual") -> SaveResult:
        async with self._save_lock:
            revision = self.store.revision
            if not self.has_unsaved_changes:
                return SaveResult("skipped", revision)
            snapshot = list(self.store.blocks)
            self._saving = True
            try:
                persisted = await asyncio.to_thread(
                    self._repository.save, self.document_id, snapshot
                )
            except Exception as exc:
                logger.exception("Saving document %s failed (%s).", self.document_id, reason)
                self.last_error = str(exc) or exc.__class__.__name__
                return SaveResult("failed", revision, error=self.last_error)
            finally:
                self._saving = False
            assigned = _assigned_ids(snapshot, persisted)
            self.store.reassign_ids(assigned)
            self.drag.reassign_ids(assigned)
            self._saved_revision = revision
            self.last_saved_at = self._clock()
            self.last_error = None
            logger.info(
                "Saved document %s at revision %s (%s blocks, %s).",
                self.document_id,
                revision,
                len(snapshot),
                reason,
            )
            return SaveResult("saved", revision, saved_at=self.last_saved_at)

    def import_data(self, data: Any) -> int:
        blocks = import_blocks(data, self.document_id)
        self.drag.end()
        self.store.replace_all(blocks)
        return len(blocks)


def _assigned_ids(sent: Sequence[Block], persisted: Sequence[Block]) -> dict[BlockId, BlockId]:
    if len(sent) != len(persisted):
        logger.warning(
            "Repository returned %s blocks for %s sent; keeping local ids.",
            len(persisted),
            len(sent),
        )
        return {}
    return {
        before.id: after.id for before, after in zip(sent, persisted) if before.id != after.id
    }


async def run_autosave_loop(
    save: Callable[[], Awaitable[object]],
    interval_seconds: float,
    stop_event: asyncio.Event,
) -> None:
    while True:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            if stop_event.is_set():
                return
        except TimeoutError:
            pass
        try:
            await save()
        except Exception:
            logger.exception("Periodic autosave failed.")


@dataclass
class EditorSessionRegistry:
    """Explicit holder of the open sessions, one per document."""

    repository: BlockRepository
    factory: Callable[[str, Sequence[Block]], EditorSession]
    sessions: dict[str, EditorSession] = field(default_factory=dict)

    def open(self, document_id: str) -> EditorSession:
        session = self.sessions.get(document_id)
        if session is not None:
            return session
        try:
            blocks = self.repository.load(document_id)
        except FileNotFoundError:
            blocks = []
        session = self.factory(document_id, blocks)
        self.sessions[document_id] = session
        return session

    def get(self, document_id: str) -> EditorSession | None:
        return self.sessions.get(document_id)

    async def save_all(self, reason: SaveReason = "autosave") -> list[SaveResult]:
        return [await session.save(reason) for session in list(self.sessions.values())]
