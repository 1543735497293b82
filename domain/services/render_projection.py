from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Union

from domain.models import Block, GridRow, VerticalAlignment
from domain.services.grid_operations import normalize_column_widths
from domain.services.layout_grouper import group_layout_rows

REM_PER_GAP_UNIT = 0.25


@dataclass(frozen=True)
class RenderCell:
    position: int
    block: Block | None
    vertical_alignment: VerticalAlignment = "top"

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "blockId": self.block.id if self.block else None,
            "type": self.block.type if self.block else None,
            "verticalAlignment": self.vertical_alignment,
        }


@dataclass(frozen=True)
class RenderSingle:
    block: Block

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "single",
            "blockId": self.block.id,
            "type": self.block.type,
            "verticalAlignment": self.block.vertical_alignment,
        }


@dataclass(frozen=True)
class RenderGrid:
    row_id: str
    columns: int
    gap: int
    column_widths: tuple[float, ...]
    cells: tuple[RenderCell, ...]

    @property
    def gap_rem(self) -> float:
        return self.gap * REM_PER_GAP_UNIT

    @property
    def template_columns(self) -> str:
        return " ".join(f"{width:g}%" for width in self.column_widths)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "grid",
            "rowId": self.row_id,
            "columns": self.columns,
            "gap": self.gap,
            "gapRem": self.gap_rem,
            "columnWidths": list(self.column_widths),
            "cells": [cell.to_dict() for cell in self.cells],
        }


RenderRow = Union[RenderSingle, RenderGrid]


def project_for_render(blocks: Iterable[Block]) -> tuple[RenderRow, ...]:
    """Read-only preview rows.

    Hidden blocks are dropped before grouping, so a grid whose members are all
    hidden disappears. The editing view shows them dimmed instead.
    """
    visible = [block for block in blocks if block.visible]
    rendered: list[RenderRow] = []
    for row in group_layout_rows(visible):
        if isinstance(row, GridRow):
            rendered.append(_render_grid(row))
        else:
            rendered.append(RenderSingle(row.block))
    return tuple(rendered)


def _render_grid(row: GridRow) -> RenderGrid:
    widths = row.column_widths
    if widths is None or len(widths) != row.columns:
        widths = tuple(100 / row.columns for _ in range(row.columns))
    cells = tuple(
        RenderCell(
            position=position,
            block=block,
            vertical_alignment=block.vertical_alignment if block else "top",
        )
        for position, block in enumerate(row.cells)
    )
    return RenderGrid(
        row_id=row.row_id,
        columns=row.columns,
        gap=row.gap,
        column_widths=normalize_column_widths(widths),
        cells=cells,
    )
