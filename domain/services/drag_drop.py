from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace

from domain.errors import InvalidDrop
from domain.models import Block, BlockId, GridRow, SingleRow, single_row_key
from domain.services.block_store import BlockStore
from domain.services.layout_grouper import find_row, row_for_block

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_SECONDS = 0.05
DEFAULT_LEAVE_SECONDS = 0.1


class DragPhase(str, enum.Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    HOVERING = "hovering"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


_IN_FLIGHT = {DragPhase.DRAGGING, DragPhase.HOVERING}


@dataclass(frozen=True)
class DropTarget:
    row_key: str
    position: int | None = None


@dataclass(frozen=True)
class DropOutcome:
    phase: DragPhase
    reason: str = ""
    block_id: BlockId | None = None
    target: DropTarget | None = None
    displaced_block_id: BlockId | None = None

    @property
    def committed(self) -> bool:
        return self.phase is DragPhase.COMMITTED


class DragDropEngine:
    """State machine for a single block drag gesture.

    Hover targets only become visible after ``settle_seconds`` and are
    cleared ``leave_seconds`` after the pointer leaves, so a fast pointer
    crossing several rows does not flicker. When a drop lands on an occupied
    grid cell the occupant swaps places with the dragged block: it takes the
    dragged block's previous layout and order slot.
    """

    def __init__(
        self,
        store: BlockStore,
        *,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        leave_seconds: float = DEFAULT_LEAVE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._settle_seconds = settle_seconds
        self._leave_seconds = leave_seconds
        self._clock = clock
        self._phase = DragPhase.IDLE
        self._source_id: BlockId | None = None
        self._source_row_key: str | None = None
        self._hover: DropTarget | None = None
        self._pending: tuple[DropTarget, float] | None = None
        self._leave_at: float | None = None
        self._last_outcome: DropOutcome | None = None

    @property
    def last_outcome(self) -> DropOutcome | None:
        return self._last_outcome

    @property
    def phase(self) -> DragPhase:
        self._settle()
        return self._phase

    @property
    def source_id(self) -> BlockId | None:
        return self._source_id

    @property
    def source_row_key(self) -> str | None:
        return self._source_row_key

    @property
    def hover_target(self) -> DropTarget | None:
        self._settle()
        return self._hover

    def begin(self, block_id: BlockId) -> bool:
        if self._phase in _IN_FLIGHT:
            logger.warning(
                "Drag of block %s rejected: block %s is still being dragged.",
                block_id,
                self._source_id,
            )
            return False
        row = row_for_block(self._store.layout_rows(), block_id)
        if row is None:
            logger.warning("Drag rejected: block %s not found.", block_id)
            return False
        self._reset()
        self._phase = DragPhase.DRAGGING
        self._source_id = block_id
        self._source_row_key = row.key
        return True

    def hover(self, row_key: str, position: int | None = None) -> None:
        if self._phase not in _IN_FLIGHT:
            return
        self._settle()
        self._pending = (DropTarget(row_key, position), self._clock())
        self._leave_at = None

    def leave(self) -> None:
        if self._phase not in _IN_FLIGHT:
            return
        self._settle()
        self._leave_at = self._clock()

    def drop(self, row_key: str | None = None, position: int | None = None) -> DropOutcome:
        """Resolve the drop target and apply the move.

        Explicit arguments win over the hovered target; a pending hover that
        has not settled yet still counts, since the pointer was released over
        it. A cancelled drop returns the engine to idle straight away, a
        committed one stays committed until :meth:`end`.
        """
        if self._phase not in _IN_FLIGHT:
            return DropOutcome(DragPhase.CANCELLED, reason="no drag in progress")
        self._settle()
        if row_key is not None:
            target: DropTarget | None = DropTarget(row_key, position)
        elif self._pending is not None:
            target = self._pending[0]
        else:
            target = self._hover
        source_id = self._source_id
        try:
            if target is None:
                raise InvalidDrop("no drop target")
            displaced = self._apply(target)
        except InvalidDrop as exc:
            logger.info("Drop of block %s cancelled: %s.", source_id, exc)
            self._reset()
            self._last_outcome = DropOutcome(
                DragPhase.CANCELLED, reason=str(exc), block_id=source_id, target=target
            )
            return self._last_outcome
        self._phase = DragPhase.COMMITTED
        self._clear_hover()
        self._last_outcome = DropOutcome(
            DragPhase.COMMITTED,
            block_id=source_id,
            target=target,
            displaced_block_id=displaced,
        )
        return self._last_outcome

    def cancel(self) -> None:
        if self._phase in _IN_FLIGHT:
            self._last_outcome = DropOutcome(
                DragPhase.CANCELLED, reason="cancelled", block_id=self._source_id
            )
        self._reset()

    def end(self) -> None:
        self._reset()

    def reassign_ids(self, mapping: Mapping[BlockId, BlockId]) -> None:
        """Follow a store id reassignment so an in-flight drag keeps its source and targets."""
        if not mapping:
            return
        if self._source_id in mapping:
            self._source_id = mapping[self._source_id]
        keys = {single_row_key(old): single_row_key(new) for old, new in mapping.items()}
        if self._source_row_key in keys:
            self._source_row_key = keys[self._source_row_key]
        if self._hover is not None and self._hover.row_key in keys:
            self._hover = replace(self._hover, row_key=keys[self._hover.row_key])
        if self._pending is not None and self._pending[0].row_key in keys:
            target, since = self._pending
            self._pending = (replace(target, row_key=keys[target.row_key]), since)

    def _apply(self, target: DropTarget) -> BlockId | None:
        assert self._source_id is not None
        store = self._store
        source = store.get(self._source_id)
        if source is None:
            raise InvalidDrop(f"block {self._source_id} no longer exists")
        rows = store.layout_rows()
        row = find_row(rows, target.row_key)
        if row is None:
            raise InvalidDrop(f"row {target.row_key} no longer exists")
        if isinstance(row, GridRow):
            return self._drop_on_grid(source, row, target.position)
        self._drop_on_single(source, row)
        return None

    def _drop_on_grid(self, source: Block, row: GridRow, position: int | None) -> BlockId | None:
        store = self._store
        if position is None:
            position = row.holes[0] if row.holes else row.columns - 1
        if position < 0 or position >= row.columns:
            raise InvalidDrop(f"position {position} is outside row {row.row_id}")
        occupant = row.cells[position]
        if occupant is not None and occupant.id == source.id:
            return None

        with store.batch():
            if occupant is not None:
                source_index = store.index_of(source.id)
                occupant_index = store.index_of(occupant.id)
                assert source_index is not None and occupant_index is not None
                store.update(occupant.id, layout=source.layout)
                store.update(source.id, layout=row.layout_for(position))
                first, second = sorted((source_index, occupant_index))
                store.move_to(store.blocks[second].id, first)
                store.move_to(store.blocks[first + 1].id, second)
                return occupant.id

            store.update(source.id, layout=row.layout_for(position))
            store.move_to(source.id, self._grid_slot(row, position, source.id))
        return None

    def _grid_slot(self, row: GridRow, position: int, source_id: BlockId) -> int:
        store = self._store
        current = store.index_of(source_id)
        assert current is not None
        before = [b for b in row.cells[:position] if b is not None and b.id != source_id]
        after = [b for b in row.cells[position + 1 :] if b is not None and b.id != source_id]
        if before:
            anchor = store.index_of(before[-1].id)
            assert anchor is not None
            # move_to indexes the list with the source already removed
            return anchor + 1 if anchor < current else anchor
        if not after:
            return current
        anchor = store.index_of(after[0].id)
        assert anchor is not None
        return anchor if anchor < current else anchor - 1

    def _drop_on_single(self, source: Block, row: SingleRow) -> None:
        store = self._store
        if row.block.id == source.id:
            if source.layout is not None:
                store.update(source.id, layout=None)
            return
        target_index = store.index_of(row.block.id)
        assert target_index is not None
        with store.batch():
            if source.layout is not None:
                store.update(source.id, layout=None)
            # After the source is lifted out, this index lands after the target
            # when moving down and before it when moving up.
            store.move_to(source.id, target_index)

    def _settle(self) -> None:
        now = self._clock()
        if self._pending is not None and now - self._pending[1] >= self._settle_seconds:
            self._hover = self._pending[0]
            self._pending = None
        if self._leave_at is not None and now - self._leave_at >= self._leave_seconds:
            self._hover = None
            self._pending = None
            self._leave_at = None
        if self._phase in _IN_FLIGHT:
            self._phase = DragPhase.HOVERING if self._hover else DragPhase.DRAGGING

    def _clear_hover(self) -> None:
        self._hover = None
        self._pending = None
        self._leave_at = None

    def _reset(self) -> None:
        self._phase = DragPhase.IDLE
        self._source_id = None
        self._source_row_key = None
        self._clear_hover()
