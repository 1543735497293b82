from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from domain.models import DEFAULT_GAP, Block, BlockId, BlockLayout, GridRow
from domain.services.block_store import BlockStore
from domain.services.layout_grouper import find_row

logger = logging.getLogger(__name__)

MIN_GRID_COLUMNS = 2
DEFAULT_MAX_GRID_COLUMNS = 4


@dataclass(frozen=True)
class GridConversion:
    row_id: str
    block_ids: tuple[BlockId, ...]


def generate_row_id() -> str:
    return f"row_{uuid.uuid4().hex[:12]}"


def convert_to_grid(
    store: BlockStore,
    block_id: BlockId,
    columns: int,
    gap: int | None = None,
    *,
    max_columns: int = DEFAULT_MAX_GRID_COLUMNS,
    filler_type: str = "paragraph",
) -> GridConversion | None:
    """Turn a single block into cell 0 of a new grid row of ``columns`` cells.

    The remaining cells are filled with fresh ``filler_type`` blocks inserted
    right after the original block, all inside one store batch.
    """
    if columns < MIN_GRID_COLUMNS or columns > max_columns:
        msg = f"Grid rows need {MIN_GRID_COLUMNS}..{max_columns} columns, got {columns}"
        raise ValueError(msg)
    original_index = store.index_of(block_id)
    if original_index is None:
        logger.warning("Cannot convert block %s to a grid: not found.", block_id)
        return None
    block = store.blocks[original_index]
    if block.layout is not None:
        logger.warning(
            "Cannot convert block %s to a grid: it already belongs to row %s.",
            block_id,
            block.layout.row_id,
        )
        return None

    if gap is None:
        gap = DEFAULT_GAP
    row_id = generate_row_id()
    created: list[BlockId] = [block_id]
    with store.batch():
        store.update(block_id, layout=_layout(row_id, 0, columns, gap))
        for position in range(1, columns):
            new_id = store.add(filler_type, at_index=original_index + position)
            store.update(new_id, layout=_layout(row_id, position, columns, gap))
            created.append(new_id)
    logger.info("Converted block %s into grid row %s with %s columns.", block_id, row_id, columns)
    return GridConversion(row_id=row_id, block_ids=tuple(created))


def fill_grid_cell(
    store: BlockStore,
    row_id: str,
    position: int,
    block_type: str = "paragraph",
) -> BlockId | None:
    row = _grid_row(store, row_id)
    if row is None:
        return None
    if position < 0 or position >= row.columns:
        msg = f"Position {position} is outside grid row {row_id} ({row.columns} columns)"
        raise ValueError(msg)
    if row.cells[position] is not None:
        logger.warning("Cell %s of grid row %s is already filled.", position, row_id)
        return None
    index = _insertion_index(store, row, position)
    with store.batch():
        new_id = store.add(block_type, at_index=index)
        store.update(new_id, layout=row.layout_for(position))
    return new_id


def set_column_widths(store: BlockStore, row_id: str, widths: Sequence[float]) -> bool:
    row = _grid_row(store, row_id)
    if row is None:
        return False
    if len(widths) != row.columns:
        msg = f"Grid row {row_id} has {row.columns} columns, got {len(widths)} widths"
        raise ValueError(msg)
    if any(width < 0 for width in widths):
        msg = "Column widths must not be negative"
        raise ValueError(msg)
    normalized = normalize_column_widths(widths)
    with store.batch():
        for member in row.members:
            assert member.layout is not None
            layout = member.layout.model_copy(update={"column_widths": normalized})
            store.update(member.id, layout=layout)
    return True


def dissolve_grid(store: BlockStore, row_id: str) -> int:
    row = _grid_row(store, row_id)
    if row is None:
        return 0
    with store.batch():
        for member in row.members:
            store.update(member.id, layout=None)
    return len(row.members)


def add_grid_column(
    store: BlockStore,
    row_id: str,
    *,
    max_columns: int = DEFAULT_MAX_GRID_COLUMNS,
) -> int | None:
    """Append an empty cell to a grid row and return the new column count."""
    row = _grid_row(store, row_id)
    if row is None:
        return None
    columns = row.columns + 1
    if columns > max_columns:
        msg = f"Grid row {row_id} already has {row.columns} of {max_columns} columns"
        raise ValueError(msg)
    widths = None
    if row.column_widths is not None:
        widths = normalize_column_widths((*row.column_widths, 100 / columns))
    with store.batch():
        for member in row.members:
            assert member.layout is not None
            layout = member.layout.model_copy(
                update={"columns": columns, "column_widths": widths}
            )
            store.update(member.id, layout=layout)
    return columns


def remove_grid_column(
    store: BlockStore,
    row_id: str,
    position: int,
    *,
    keep_block: bool = True,
) -> bool:
    """Drop one cell of a grid row, shifting the cells to its right one step left.

    The removed cell's block becomes a single block placed right after the row,
    or is deleted when ``keep_block`` is false. Use :func:`dissolve_grid` to
    go below two columns.
    """
    row = _grid_row(store, row_id)
    if row is None:
        return False
    if position < 0 or position >= row.columns:
        msg = f"Position {position} is outside grid row {row_id} ({row.columns} columns)"
        raise ValueError(msg)
    columns = row.columns - 1
    if columns < MIN_GRID_COLUMNS:
        msg = f"Grid row {row_id} cannot have fewer than {MIN_GRID_COLUMNS} columns"
        raise ValueError(msg)
    widths = None
    if row.column_widths is not None:
        kept = [width for idx, width in enumerate(row.column_widths) if idx != position]
        widths = normalize_column_widths(kept)
    removed = row.cells[position]
    remaining = [block for block in row.members if removed is None or block.id != removed.id]

    with store.batch():
        for member in remaining:
            assert member.layout is not None
            shift = 1 if member.layout.position > position else 0
            layout = member.layout.model_copy(
                update={
                    "position": member.layout.position - shift,
                    "columns": columns,
                    "column_widths": widths,
                }
            )
            store.update(member.id, layout=layout)
        if removed is not None:
            if keep_block:
                store.update(removed.id, layout=None)
                _move_after(store, removed.id, remaining)
            else:
                store.delete(removed.id)
    logger.info("Removed column %s from grid row %s (%s left).", position, row_id, columns)
    return True


def normalize_column_widths(widths: Sequence[float]) -> tuple[float, ...]:
    if not widths:
        return ()
    total = sum(widths)
    if total == 0:
        return tuple(100 / len(widths) for _ in widths)
    if abs(total - 100) < 0.1:
        return tuple(float(width) for width in widths)
    return tuple(width / total * 100 for width in widths)


def _grid_row(store: BlockStore, row_id: str) -> GridRow | None:
    row = find_row(store.layout_rows(), row_id)
    if not isinstance(row, GridRow):
        logger.warning("Grid row %s not found.", row_id)
        return None
    return row


def _insertion_index(store: BlockStore, row: GridRow, position: int) -> int:
    # Keep members ordered by position so the row stays contiguous in order-space.
    before = [block for block in row.cells[:position] if block is not None]
    if before:
        index = store.index_of(before[-1].id)
        assert index is not None
        return index + 1
    after = [block for block in row.cells[position:] if block is not None]
    index = store.index_of(after[0].id)
    assert index is not None
    return index


def _move_after(store: BlockStore, block_id: BlockId, members: Sequence[Block]) -> None:
    current = store.index_of(block_id)
    indexes = [store.index_of(member.id) for member in members]
    last = max((index for index in indexes if index is not None), default=None)
    if current is None or last is None or current > last:
        return
    # move_to indexes the list with the block already lifted out
    store.move_to(block_id, last)


def _layout(row_id: str, position: int, columns: int, gap: int) -> BlockLayout:
    return BlockLayout(row_id=row_id, position=position, columns=columns, gap=gap)
