from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from domain.models import BLOCK_TYPES, Block, BlockId, LayoutRow, utc_now
from domain.ports.repositories import PayloadFactory
from domain.services.block_defaults import default_payload
from domain.services.layout_grouper import LayoutRowsCache

logger = logging.getLogger(__name__)

Direction = Literal["up", "down"]

UPDATABLE_FIELDS = frozenset({"payload", "layout", "visible", "meta"})
DEFAULT_HISTORY_LIMIT = 50


@dataclass(frozen=True)
class _Snapshot:
    blocks: tuple[Block, ...]
    active_block_id: BlockId | None


class BlockStore:
    """Canonical ordered block collection of one editing session.

    Every operation leaves ``order`` equal to the block's index, so the values
    are always exactly ``0..n-1``. Inside :meth:`batch` the renumbering,
    history entry and revision bump happen once, when the outermost batch
    exits; lookups inside a batch are positional.
    """

    def __init__(
        self,
        document_id: str = "",
        blocks: Iterable[Block] = (),
        *,
        payload_factory: PayloadFactory = default_payload,
        clock: Callable[[], datetime] = utc_now,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.document_id = document_id
        self._payload_factory = payload_factory
        self._clock = clock
        self._history_limit = max(0, history_limit)
        self._blocks: tuple[Block, ...] = self._renumber(sorted(blocks, key=lambda b: b.order))
        self._active_block_id: BlockId | None = None
        self._next_temp_id = _first_free_temp_id(self._blocks)
        self._revision = 0
        self._undo: list[_Snapshot] = []
        self._redo: list[_Snapshot] = []
        self._batch_depth = 0
        self._batch_origin: _Snapshot | None = None
        self._batch_changed = False
        self._rows_cache = LayoutRowsCache()

    @property
    def blocks(self) -> tuple[Block, ...]:
        return self._blocks

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def active_block_id(self) -> BlockId | None:
        return self._active_block_id

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def __len__(self) -> int:
        return len(self._blocks)

    def get(self, block_id: BlockId) -> Block | None:
        index = self.index_of(block_id)
        return None if index is None else self._blocks[index]

    def index_of(self, block_id: BlockId) -> int | None:
        for index, block in enumerate(self._blocks):
            if block.id == block_id:
                return index
        return None

    def layout_rows(self) -> tuple[LayoutRow, ...]:
        return self._rows_cache.rows_for(self._blocks)

    def select(self, block_id: BlockId | None) -> bool:
        if block_id is not None and self.index_of(block_id) is None:
            logger.warning("Cannot select block %s: not found.", block_id)
            return False
        self._active_block_id = block_id
        return True

    def add(self, block_type: str, at_index: int | None = None) -> BlockId:
        if block_type not in BLOCK_TYPES:
            msg = f"Unknown block type: {block_type}"
            raise ValueError(msg)
        now = self._clock()
        block = Block(
            id=self._new_temp_id(),
            document_id=self.document_id,
            order=len(self._blocks),
            type=block_type,
            payload=self._payload_factory(block_type),
            created_at=now,
            updated_at=now,
        )
        blocks = list(self._blocks)
        if at_index is None:
            blocks.append(block)
        else:
            blocks.insert(max(0, min(at_index, len(blocks))), block)
        self._apply(blocks)
        return block.id

    def update(self, block_id: BlockId, **changes: Any) -> bool:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            msg = f"Fields cannot be updated: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        index = self.index_of(block_id)
        if index is None:
            logger.warning("Cannot update block %s: not found.", block_id)
            return False
        data = self._blocks[index].model_dump()
        data.update(changes)
        data["updated_at"] = self._clock()
        updated = Block.model_validate(data)
        blocks = list(self._blocks)
        blocks[index] = updated
        self._apply(blocks)
        return True

    def duplicate(self, block_id: BlockId) -> BlockId | None:
        index = self.index_of(block_id)
        if index is None:
            logger.warning("Cannot duplicate block %s: not found.", block_id)
            return None
        now = self._clock()
        clone = self._blocks[index].model_copy(
            deep=True,
            update={"id": self._new_temp_id(), "created_at": now, "updated_at": now},
        )
        blocks = list(self._blocks)
        blocks.insert(index + 1, clone)
        self._apply(blocks)
        return clone.id

    def delete(self, block_id: BlockId) -> bool:
        index = self.index_of(block_id)
        if index is None:
            logger.warning("Cannot delete block %s: not found.", block_id)
            return False
        blocks = list(self._blocks)
        del blocks[index]
        if self._active_block_id == block_id:
            self._active_block_id = None
        self._apply(blocks)
        return True

    def move(self, block_id: BlockId, direction: Direction) -> bool:
        if direction not in ("up", "down"):
            msg = f"Unknown move direction: {direction}"
            raise ValueError(msg)
        index = self.index_of(block_id)
        if index is None:
            logger.warning("Cannot move block %s: not found.", block_id)
            return False
        target = index - 1 if direction == "up" else index + 1
        if target < 0 or target >= len(self._blocks):
            return False
        blocks = list(self._blocks)
        blocks[index], blocks[target] = blocks[target], blocks[index]
        self._apply(blocks)
        return True

    def move_to(self, block_id: BlockId, index: int) -> bool:
        current = self.index_of(block_id)
        if current is None:
            logger.warning("Cannot move block %s: not found.", block_id)
            return False
        blocks = list(self._blocks)
        block = blocks.pop(current)
        target = max(0, min(index, len(blocks)))
        if target == current:
            return True
        blocks.insert(target, block)
        self._apply(blocks)
        return True

    def replace_all(self, blocks: Iterable[Block]) -> None:
        incoming = sorted(blocks, key=lambda b: b.order)
        ids = [block.id for block in incoming]
        if len(set(ids)) != len(ids):
            msg = "Block ids must be unique within a document"
            raise ValueError(msg)
        if self._active_block_id not in set(ids):
            self._active_block_id = None
        self._next_temp_id = min(self._next_temp_id, _first_free_temp_id(incoming))
        self._apply(incoming)

    def reassign_ids(self, mapping: Mapping[BlockId, BlockId]) -> None:
        """Swap temporary ids for permanent ones without recording an edit."""
        if not mapping:
            return
        self._blocks = _remap(self._blocks, mapping)
        self._undo = [
            _Snapshot(_remap(snap.blocks, mapping), mapping.get(snap.active_block_id, snap.active_block_id))
            for snap in self._undo
        ]
        self._redo = [
            _Snapshot(_remap(snap.blocks, mapping), mapping.get(snap.active_block_id, snap.active_block_id))
            for snap in self._redo
        ]
        if self._active_block_id is not None:
            self._active_block_id = mapping.get(self._active_block_id, self._active_block_id)

    @contextmanager
    def batch(self) -> Iterator[BlockStore]:
        if self._batch_depth == 0:
            self._batch_origin = self._snapshot()
            self._batch_changed = False
        self._batch_depth += 1
        try:
            yield self
        except BaseException:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._batch_origin is not None:
                self._restore(self._batch_origin)
                self._batch_origin = None
            raise
        self._batch_depth -= 1
        if self._batch_depth == 0:
            origin = self._batch_origin
            self._batch_origin = None
            if self._batch_changed and origin is not None:
                self._push_history(origin)
                self._blocks = self._renumber(self._blocks)
                self._revision += 1

    def undo(self) -> bool:
        return self._step_history(self._undo, self._redo)

    def redo(self) -> bool:
        return self._step_history(self._redo, self._undo)

    def _step_history(self, source: list[_Snapshot], target: list[_Snapshot]) -> bool:
        if self._batch_depth:
            msg = "History cannot be navigated inside a batch"
            raise RuntimeError(msg)
        if not source:
            return False
        target.append(self._snapshot())
        self._restore(source.pop())
        self._revision += 1
        return True

    def _apply(self, blocks: Sequence[Block]) -> None:
        if self._batch_depth:
            self._blocks = tuple(blocks)
            self._batch_changed = True
            return
        self._push_history(self._snapshot())
        self._blocks = self._renumber(blocks)
        self._revision += 1

    def _push_history(self, snapshot: _Snapshot) -> None:
        self._redo.clear()
        if self._history_limit == 0:
            return
        self._undo.append(snapshot)
        if len(self._undo) > self._history_limit:
            del self._undo[0]

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(self._blocks, self._active_block_id)

    def _restore(self, snapshot: _Snapshot) -> None:
        self._blocks = snapshot.blocks
        self._active_block_id = snapshot.active_block_id

    def _renumber(self, blocks: Iterable[Block]) -> tuple[Block, ...]:
        now: datetime | None = None
        result: list[Block] = []
        for index, block in enumerate(blocks):
            if block.order != index:
                now = now or self._clock()
                block = block.model_copy(update={"order": index, "updated_at": now})
            result.append(block)
        return tuple(result)

    def _new_temp_id(self) -> int:
        temp_id = self._next_temp_id
        self._next_temp_id -= 1
        return temp_id


def _first_free_temp_id(blocks: Iterable[Block]) -> int:
    lowest = min(
        (block.id for block in blocks if isinstance(block.id, int) and block.id < 0),
        default=0,
    )
    return lowest - 1


def _remap(blocks: tuple[Block, ...], mapping: Mapping[BlockId, BlockId]) -> tuple[Block, ...]:
    return tuple(
        block.model_copy(update={"id": mapping[block.id]}) if block.id in mapping else block
        for block in blocks
    )
