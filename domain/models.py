from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Dict, Literal, Optional, Tuple, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

EXPORT_FORMAT_VERSION = "2.0"
EXPORT_SOURCE = "native-editor"
DEFAULT_GAP = 4

BlockType = Literal[
    "paragraph",
    "heading",
    "list",
    "quote",
    "code",
    "figure",
    "callout",
    "table",
    "citation_list",
    "poll",
    "reviewer_quote",
    "snapshot_card",
    "number_card",
    "divider",
    "diagram",
]
BLOCK_TYPES: Tuple[str, ...] = get_args(BlockType)

VerticalAlignment = Literal["top", "center", "bottom"]
VERTICAL_ALIGNMENTS: Tuple[str, ...] = get_args(VerticalAlignment)

BlockId = Union[int, str]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class BlockLayout(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    row_id: str = Field(..., min_length=1, alias="rowId")
    position: int = Field(..., ge=0)
    columns: int = Field(..., ge=1)
    gap: int = Field(default=DEFAULT_GAP, ge=0)
    column_widths: Optional[Tuple[float, ...]] = Field(default=None, alias="columnWidths")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "rowId": self.row_id,
            "position": self.position,
            "columns": self.columns,
            "gap": self.gap,
        }
        if self.column_widths is not None:
            payload["columnWidths"] = list(self.column_widths)
        return payload


class Block(BaseModel):
    """A single ordered content unit of a review document.

    Instances are immutable values: the block store swaps in updated copies
    instead of editing them, so a derived layout computed from an older
    collection never changes under its reader.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: BlockId
    document_id: str = Field(default="", alias="documentId")
    order: int = Field(default=0, ge=0)
    type: BlockType
    payload: Dict[str, Any] = Field(default_factory=dict)
    layout: Optional[BlockLayout] = None
    visible: bool = True
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")

    @field_validator("id", mode="before")
    @classmethod
    def reject_blank_id(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            msg = "Block id must not be empty"
            raise ValueError(msg)
        if isinstance(value, bool):
            msg = "Block id must be a number or a string"
            raise ValueError(msg)
        return value

    @field_validator("meta", mode="before")
    @classmethod
    def default_meta(cls, value: object) -> object:
        return {} if value is None else value

    @property
    def row_id(self) -> str | None:
        return self.layout.row_id if self.layout else None

    @property
    def vertical_alignment(self) -> VerticalAlignment:
        alignment = self.meta.get("alignment")
        vertical = alignment.get("vertical") if isinstance(alignment, dict) else None
        if vertical in VERTICAL_ALIGNMENTS:
            return vertical  # type: ignore[return-value]
        return "top"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "documentId": self.document_id,
            "order": self.order,
            "type": self.type,
            "payload": self.payload,
            "layout": self.layout.to_dict() if self.layout else None,
            "visible": self.visible,
            "meta": self.meta,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


def single_row_key(block_id: BlockId) -> str:
    return f"single-{block_id}"


@dataclass(frozen=True)
class SingleRow:
    block: Block

    @property
    def kind(self) -> str:
        return "single"

    @property
    def key(self) -> str:
        return single_row_key(self.block.id)

    @property
    def members(self) -> Tuple[Block, ...]:
        return (self.block,)

    @property
    def min_order(self) -> int:
        return self.block.order

    @property
    def max_order(self) -> int:
        return self.block.order

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "key": self.key, "blockId": self.block.id}


@dataclass(frozen=True)
class GridRow:
    row_id: str
    columns: int
    gap: int
    cells: Tuple[Optional[Block], ...]
    column_widths: Optional[Tuple[float, ...]] = None

    @property
    def kind(self) -> str:
        return "grid"

    @property
    def key(self) -> str:
        return self.row_id

    @property
    def members(self) -> Tuple[Block, ...]:
        return tuple(block for block in self.cells if block is not None)

    @property
    def holes(self) -> Tuple[int, ...]:
        return tuple(idx for idx, block in enumerate(self.cells) if block is None)

    @property
    def min_order(self) -> int:
        return min(block.order for block in self.members)

    @property
    def max_order(self) -> int:
        return max(block.order for block in self.members)

    @property
    def is_contiguous(self) -> bool:
        return self.max_order - self.min_order + 1 == len(self.members)

    def layout_for(self, position: int) -> BlockLayout:
        return BlockLayout(
            row_id=self.row_id,
            position=position,
            columns=self.columns,
            gap=self.gap,
            column_widths=self.column_widths,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "key": self.key,
            "rowId": self.row_id,
            "columns": self.columns,
            "gap": self.gap,
            "columnWidths": list(self.column_widths) if self.column_widths else None,
            "cells": [block.id if block else None for block in self.cells],
        }


LayoutRow = Union[SingleRow, GridRow]
