from __future__ import annotations

from collections.abc import Sequence
from typing import Any, cast

from botocore.client import BaseClient  # type: ignore[import-untyped]
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore[import-untyped]
from botocore.response import StreamingBody  # type: ignore[import-untyped]

from adapters.filesystem.block_utils import (
    assign_permanent_ids,
    document_filename,
    dumps_blocks,
    loads_blocks,
)
from adapters.s3.s3_client import create_s3_client
from domain.errors import PersistenceError
from domain.models import Block
from domain.ports.repositories import BlockRepository

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class S3BlockRepository(BlockRepository):
    def __init__(self, client: BaseClient, bucket: str, prefix: str = "") -> None:
        self._client = client
        self._bucket = bucket
        self._prefix = self._normalize_prefix(prefix)

    @classmethod
    def from_settings(cls, settings: Any) -> S3BlockRepository:
        return cls(create_s3_client(settings), settings.bucket, settings.prefix)

    def build_key(self, document_id: str) -> str:
        return f"{self._prefix}{document_filename(document_id)}"

    def load(self, document_id: str) -> list[Block]:
        raw = self._load_raw(self.build_key(document_id))
        return loads_blocks(raw, document_id)

    def save(self, document_id: str, blocks: Sequence[Block]) -> list[Block]:
        key = self.build_key(document_id)
        try:
            stored = loads_blocks(self._load_raw(key), document_id)
        except FileNotFoundError:
            stored = []
        persisted = assign_permanent_ids(blocks, stored)
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=dumps_blocks(persisted),
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as exc:
            msg = f"Could not write document {document_id} to s3://{self._bucket}/{key}"
            raise PersistenceError(msg) from exc
        return persisted

    def _load_raw(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _MISSING_KEY_CODES:
                raise FileNotFoundError(key) from exc
            msg = f"Could not read s3://{self._bucket}/{key}"
            raise PersistenceError(msg) from exc
        except BotoCoreError as exc:
            msg = f"Could not read s3://{self._bucket}/{key}"
            raise PersistenceError(msg) from exc
        return self._read_body(response.get("Body"))

    def _read_body(self, body: Any) -> bytes:
        if isinstance(body, bytes | bytearray):
            return bytes(body)
        if isinstance(body, StreamingBody):
            return cast(bytes, body.read())
        if hasattr(body, "read"):
            return cast(bytes, body.read())
        return b""

    def _normalize_prefix(self, prefix: str) -> str:
        normalized = prefix.lstrip("/")
        if normalized in {".", "./"}:
            return ""
        if normalized and not normalized.endswith("/"):
            normalized = f"{normalized}/"
        return normalized
