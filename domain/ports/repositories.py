from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

from domain.models import Block


class BlockRepository(Protocol):
    def load(self, document_id: str) -> Sequence[Block]: ...

    def save(self, document_id: str, blocks: Sequence[Block]) -> Sequence[Block]: ...


class PayloadFactory(Protocol):
    def __call__(self, block_type: str) -> dict[str, Any]: ...
