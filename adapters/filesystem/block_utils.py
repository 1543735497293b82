from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

import orjson

from adapters.filesystem.json_utils import dump_json_bytes
from domain.errors import MalformedImportError
from domain.models import Block
from domain.services.block_exchange import build_export_envelope, export_blocks, import_blocks

_DOCUMENT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def document_filename(document_id: str) -> str:
    if not _DOCUMENT_ID_RE.match(document_id) or ".." in document_id:
        msg = f"Invalid document id: {document_id!r}"
        raise ValueError(msg)
    return f"{document_id}.json"


def assign_permanent_ids(blocks: Sequence[Block], existing: Iterable[Block] = ()) -> list[Block]:
    """Replace temporary (negative) ids with the next free positive integers."""
    known = [block.id for block in (*existing, *blocks)]
    next_id = max((value for value in known if isinstance(value, int) and value > 0), default=0) + 1
    assigned: list[Block] = []
    for block in blocks:
        if isinstance(block.id, int) and block.id < 0:
            block = block.model_copy(update={"id": next_id})
            next_id += 1
        assigned.append(block)
    return assigned


def dumps_blocks(blocks: Sequence[Block], envelope: bool = False) -> bytes:
    payload = build_export_envelope(blocks) if envelope else export_blocks(blocks)
    return dump_json_bytes(payload)


def loads_blocks(raw: bytes | str, document_id: str) -> list[Block]:
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise MalformedImportError([f"invalid JSON: {exc}"]) from exc
    return import_blocks(data, document_id)
