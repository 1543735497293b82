from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from domain.models import Block, BlockId, GridRow, LayoutRow, SingleRow

logger = logging.getLogger(__name__)


def group_layout_rows(blocks: Iterable[Block]) -> tuple[LayoutRow, ...]:
    """Partition blocks into display rows using only order and layout metadata.

    Rows come out in the order of their first member. A grid member that
    points outside its row or at a cell already claimed by an earlier block
    is not placed in the grid; it is emitted as a single row where the walk
    meets it.
    """
    ordered = sorted(blocks, key=lambda block: block.order)
    members_by_row: dict[str, list[Block]] = {}
    for block in ordered:
        if block.layout is not None:
            members_by_row.setdefault(block.layout.row_id, []).append(block)

    rows: list[LayoutRow] = []
    processed: set[BlockId] = set()
    emitted_rows: set[str] = set()
    for block in ordered:
        if block.id in processed:
            continue
        layout = block.layout
        if layout is None or layout.row_id in emitted_rows:
            rows.append(SingleRow(block))
            processed.add(block.id)
            continue

        emitted_rows.add(layout.row_id)
        grid, placed = _build_grid_row(block, members_by_row[layout.row_id])
        if not placed or placed[0] is not block:
            rows.append(SingleRow(block))
            processed.add(block.id)
        if placed:
            rows.append(grid)
        processed.update(member.id for member in placed)
    return tuple(rows)


def _build_grid_row(head: Block, members: Sequence[Block]) -> tuple[GridRow, list[Block]]:
    assert head.layout is not None
    columns = head.layout.columns
    gap = head.layout.gap
    cells: list[Block | None] = [None] * columns
    placed: list[Block] = []
    for member in members:
        layout = member.layout
        assert layout is not None
        if layout.columns != columns or layout.gap != gap:
            logger.warning(
                "Grid row %s disagrees on shape: block %s has columns=%s gap=%s, using %s/%s.",
                head.layout.row_id,
                member.id,
                layout.columns,
                layout.gap,
                columns,
                gap,
            )
        if layout.position >= columns:
            logger.warning(
                "Block %s sits at position %s outside grid row %s (%s columns).",
                member.id,
                layout.position,
                layout.row_id,
                columns,
            )
            continue
        occupant = cells[layout.position]
        if occupant is not None:
            logger.warning(
                "Block %s claims cell %s of grid row %s already held by block %s.",
                member.id,
                layout.position,
                layout.row_id,
                occupant.id,
            )
            continue
        cells[layout.position] = member
        placed.append(member)
    grid = GridRow(
        row_id=head.layout.row_id,
        columns=columns,
        gap=gap,
        cells=tuple(cells),
        column_widths=head.layout.column_widths,
    )
    return grid, placed


def find_row(rows: Iterable[LayoutRow], key: str) -> LayoutRow | None:
    for row in rows:
        if row.key == key:
            return row
    return None


def row_for_block(rows: Iterable[LayoutRow], block_id: BlockId) -> LayoutRow | None:
    for row in rows:
        if any(member.id == block_id for member in row.members):
            return row
    return None


class LayoutRowsCache:
    """Remembers the rows derived from the last block tuple it was given."""

    def __init__(self) -> None:
        self._source: tuple[Block, ...] | None = None
        self._rows: tuple[LayoutRow, ...] = ()

    def rows_for(self, blocks: tuple[Block, ...]) -> tuple[LayoutRow, ...]:
        if blocks is not self._source:
            self._rows = group_layout_rows(blocks)
            self._source = blocks
        return self._rows
