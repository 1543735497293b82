from __future__ import annotations

from typing import Any

import boto3  # type: ignore[import-untyped]
from botocore.client import BaseClient  # type: ignore[import-untyped]
from botocore.config import Config  # type: ignore[import-untyped]


def create_s3_client(settings: Any) -> BaseClient:
    """Build an S3 client from ``S3Settings``-shaped settings."""
    options: dict[str, Any] = {
        "retries": {"max_attempts": settings.max_attempts, "mode": "standard"},
    }
    if settings.use_path_style:
        options["s3"] = {"addressing_style": "path"}
    return boto3.client(
        "s3",
        region_name=settings.region or None,
        endpoint_url=settings.endpoint_url or None,
        aws_access_key_id=settings.access_key_id or None,
        aws_secret_access_key=settings.secret_access_key or None,
        aws_session_token=settings.session_token or None,
        config=Config(**options),
    )
