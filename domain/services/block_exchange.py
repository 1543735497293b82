from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from domain.errors import MalformedImportError
from domain.models import EXPORT_FORMAT_VERSION, EXPORT_SOURCE, Block, BlockId, utc_now

logger = logging.getLogger(__name__)


def export_blocks(blocks: Iterable[Block]) -> list[dict[str, Any]]:
    return [block.to_dict() for block in blocks]


def build_export_envelope(blocks: Sequence[Block], now: datetime | None = None) -> dict[str, Any]:
    grid_blocks = sum(1 for block in blocks if block.layout is not None)
    return {
        "version": EXPORT_FORMAT_VERSION,
        "timestamp": (now or utc_now()).isoformat(),
        "blocks": export_blocks(blocks),
        "metadata": {
            "totalBlocks": len(blocks),
            "gridBlocks": grid_blocks,
            "singleBlocks": len(blocks) - grid_blocks,
            "exportSource": EXPORT_SOURCE,
        },
    }


def import_blocks(data: Any, document_id: str) -> list[Block]:
    """Validate exported data and turn it into blocks of ``document_id``.

    Accepts the bare JSON array or the versioned envelope. Every problem is
    collected and reported in one :class:`MalformedImportError`; nothing is
    returned unless the whole payload is valid. ``order`` decides the
    sequence, array position only breaks ties and fills missing values.
    """
    raw_blocks = data.get("blocks") if isinstance(data, dict) else data
    if not isinstance(raw_blocks, list):
        raise MalformedImportError(["expected a JSON array of blocks"])

    problems: list[str] = []
    parsed: list[tuple[int, int, Block]] = []
    seen: set[BlockId] = set()
    for index, raw in enumerate(raw_blocks):
        if not isinstance(raw, dict):
            problems.append(f"block {index}: expected an object")
            continue
        candidate = _normalize_legacy_fields(raw, index, document_id)
        missing = [name for name in ("id", "type", "payload") if candidate.get(name) is None]
        if missing:
            problems.append(f"block {index}: missing {', '.join(missing)}")
            continue
        try:
            block = Block.model_validate(candidate)
        except ValidationError as exc:
            problems.extend(f"block {index}: {_describe(error)}" for error in exc.errors())
            continue
        if block.id in seen:
            problems.append(f"block {index}: duplicate id {block.id}")
            continue
        seen.add(block.id)
        parsed.append((block.order, index, block))

    if problems:
        raise MalformedImportError(problems)

    parsed.sort(key=lambda item: (item[0], item[1]))
    blocks = [
        block if block.order == position else block.model_copy(update={"order": position})
        for position, (_, _, block) in enumerate(parsed)
    ]
    return repair_grid_rows(blocks)


def repair_grid_rows(blocks: Sequence[Block]) -> list[Block]:
    """Make every member of a grid row agree with the row's first member."""
    shapes: dict[str, tuple[int, int, Any]] = {}
    repaired: list[Block] = []
    for block in sorted(blocks, key=lambda b: b.order):
        layout = block.layout
        if layout is None:
            repaired.append(block)
            continue
        shape = shapes.setdefault(layout.row_id, (layout.columns, layout.gap, layout.column_widths))
        if shape != (layout.columns, layout.gap, layout.column_widths):
            logger.info("Repairing grid row %s shape on block %s.", layout.row_id, block.id)
            columns, gap, widths = shape
            block = block.model_copy(
                update={
                    "layout": layout.model_copy(
                        update={"columns": columns, "gap": gap, "column_widths": widths}
                    )
                }
            )
        repaired.append(block)
    return repaired


def _normalize_legacy_fields(raw: dict[str, Any], index: int, document_id: str) -> dict[str, Any]:
    candidate = dict(raw)
    if candidate.get("payload") is None and "content" in candidate:
        candidate["payload"] = candidate["content"]
    candidate.pop("content", None)
    if candidate.get("order") is None:
        sort_index = candidate.pop("sort_index", None)
        candidate["order"] = sort_index if isinstance(sort_index, int) else index
    meta = candidate.get("meta")
    if "layout" not in candidate and isinstance(meta, dict) and isinstance(meta.get("layout"), dict):
        meta = dict(meta)
        candidate["layout"] = meta.pop("layout")
        candidate["meta"] = meta
    candidate["documentId"] = document_id
    candidate.pop("document_id", None)
    return candidate


def _describe(error: Any) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "invalid value")
    return f"{location} {message}" if location else message
