from __future__ import annotations

import pytest
from botocore.exceptions import EndpointConnectionError  # type: ignore[import-untyped]
from botocore.stub import Stubber  # type: ignore[import-untyped]

from adapters.filesystem.block_utils import dumps_blocks
from adapters.s3.block_repository import S3BlockRepository
from app.config import S3Settings
from domain.errors import PersistenceError
from tests.adapters.s3.s3_utils import (
    add_get_object,
    add_missing_object,
    add_put_object,
    create_stubbed_client,
    stub_s3_documents,
)
from tests.helpers.block_fixtures import block_payload, make_block


def test_load_reads_document_under_prefix(
    monkeypatch: pytest.MonkeyPatch, s3_settings: S3Settings
) -> None:
    _, stubber = stub_s3_documents(
        monkeypatch=monkeypatch,
        documents={"documents/review.json": [block_payload(1, 0), block_payload(2, 1)]},
        bucket="review-bucket",
    )
    try:
        repository = S3BlockRepository.from_settings(s3_settings)
        blocks = repository.load("review")
    finally:
        stubber.deactivate()

    assert [block.id for block in blocks] == [1, 2]
    assert {block.document_id for block in blocks} == {"review"}
    stubber.assert_no_pending_responses()


def test_load_missing_key_raises_file_not_found() -> None:
    client = create_stubbed_client()
    stubber = Stubber(client)
    add_missing_object(stubber, bucket="review-bucket", key="docs/absent.json")
    stubber.activate()
    try:
        repository = S3BlockRepository(client, "review-bucket", "/docs")
        with pytest.raises(FileNotFoundError):
            repository.load("absent")
    finally:
        stubber.deactivate()


def test_save_assigns_ids_and_puts_json() -> None:
    client = create_stubbed_client()
    stubber = Stubber(client)
    stored = make_block(4, 0, document_id="review")
    added = make_block(-1, 1, document_id="review")
    add_get_object(stubber, bucket="review-bucket", key="review.json", payload=[stored.to_dict()])
    add_put_object(
        stubber,
        bucket="review-bucket",
        key="review.json",
        body=dumps_blocks([stored, added.model_copy(update={"id": 5})]),
    )
    stubber.activate()
    try:
        repository = S3BlockRepository(client, "review-bucket")
        persisted = repository.save("review", [stored, added])
    finally:
        stubber.deactivate()

    assert [block.id for block in persisted] == [4, 5]
    stubber.assert_no_pending_responses()


def test_save_of_new_document_starts_ids_at_one() -> None:
    client = create_stubbed_client()
    stubber = Stubber(client)
    add_missing_object(stubber, bucket="review-bucket", key="new.json")
    add_put_object(stubber, bucket="review-bucket", key="new.json")
    stubber.activate()
    try:
        persisted = S3BlockRepository(client, "review-bucket").save("new", [make_block(-1, 0)])
    finally:
        stubber.deactivate()

    assert [block.id for block in persisted] == [1]


def test_put_failure_becomes_persistence_error() -> None:
    client = create_stubbed_client()
    stubber = Stubber(client)
    add_missing_object(stubber, bucket="review-bucket", key="doc.json")
    stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
    stubber.activate()
    try:
        repository = S3BlockRepository(client, "review-bucket")
        with pytest.raises(PersistenceError, match="s3://review-bucket/doc.json"):
            repository.save("doc", [make_block(1, 0)])
    finally:
        stubber.deactivate()


def test_build_key_normalizes_prefix() -> None:
    client = create_stubbed_client()

    assert S3BlockRepository(client, "b", "docs").build_key("x") == "docs/x.json"
    assert S3BlockRepository(client, "b", "./").build_key("x") == "x.json"
    assert S3BlockRepository(client, "b", "/nested/docs/").build_key("x") == "nested/docs/x.json"


def test_connection_failure_becomes_persistence_error(monkeypatch: pytest.MonkeyPatch) -> None:
    client = create_stubbed_client()

    def _unreachable(**_kwargs: object) -> None:
        raise EndpointConnectionError(endpoint_url="http://stubbed-s3.local")

    monkeypatch.setattr(client, "get_object", _unreachable)
    monkeypatch.setattr(client, "put_object", _unreachable)
    repository = S3BlockRepository(client, "review-bucket")

    with pytest.raises(PersistenceError, match="Could not read"):
        repository.load("doc")
    with pytest.raises(PersistenceError):
        repository.save("doc", [make_block(1, 0)])
