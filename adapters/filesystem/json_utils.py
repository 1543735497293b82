from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import orjson


def dump_json_bytes(payload: Any) -> bytes:
    try:
        return orjson.dumps(payload, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS)
    except TypeError:
        # payloads are free-form; anything orjson rejects is written as its str()
        return json.dumps(payload, ensure_ascii=False, indent=2, default=str).encode("utf-8")


def write_bytes_atomic(path: Path, raw: bytes) -> None:
    """Write ``raw`` next to ``path`` first so readers never see a partial document."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    tmp_path.write_bytes(raw)
    tmp_path.replace(path)
