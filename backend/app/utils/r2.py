"""Cloudflare R2 (S3-compatible) storage for generated designs and user objects.

Key layout:
    projects/{owner_id}/{project_id}/result.png
    projects/{owner_id}/{project_id}/thumbnail.jpg
    objects/{owner_id}/{object_id}/asset.{ext}
    objects/{owner_id}/{object_id}/thumbnail.jpg

The bucket is served publicly through R2_PUBLIC_BASE_URL; without it we fall
back to pre-signed GET URLs.
"""

from __future__ import annotations

from typing import Any

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import ClientError

from app.config import settings

logger = structlog.get_logger()

PRESIGNED_URL_EXPIRY_SECONDS = 7 * 24 * 3600  # S3 signature v4 maximum


def _build_client() -> Any:
    """Create an S3 client pointed at Cloudflare R2."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{settings.r2_account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


_client: Any = None


def get_client() -> Any:
    """Lazy-init singleton client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = _build_client()
    return _client


def reset_client() -> None:
    """Reset the singleton client (for testing)."""
    global _client  # noqa: PLW0603
    _client = None


def is_configured() -> bool:
    return bool(
        settings.r2_account_id
        and settings.r2_access_key_id
        and settings.r2_secret_access_key
        and settings.r2_bucket_name
    )


def project_key(owner_id: str, project_id: str, filename: str) -> str:
    return f"projects/{owner_id}/{project_id}/{filename}"


def project_prefix(owner_id: str, project_id: str) -> str:
    return f"projects/{owner_id}/{project_id}/"


def object_key(owner_id: str, object_id: str, filename: str) -> str:
    return f"objects/{owner_id}/{object_id}/{filename}"


def object_prefix(owner_id: str, object_id: str) -> str:
    return f"objects/{owner_id}/{object_id}/"


def upload_object(key: str, data: bytes, content_type: str = "image/png") -> str:
    """Upload bytes and return the storage key."""
    get_client().put_object(
        Bucket=settings.r2_bucket_name,
        Key=key,
        Body=data,
        ContentType=content_type,
    )
    logger.info("r2_upload", key=key, size=len(data), content_type=content_type)
    return key


def public_url(key: str) -> str:
    """Return a URL anyone can GET for the stored object."""
    if settings.r2_public_base_url:
        return f"{settings.r2_public_base_url.rstrip('/')}/{key}"
    try:
        url: str = get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": settings.r2_bucket_name, "Key": key},
            ExpiresIn=PRESIGNED_URL_EXPIRY_SECONDS,
        )
    except ClientError as e:
        logger.error("r2_presign_failed", key=key, error=str(e))
        raise
    return url


def upload_public(key: str, data: bytes, content_type: str = "image/png") -> str:
    """Upload bytes and return the public URL."""
    upload_object(key, data, content_type)
    return public_url(key)


def head_bucket() -> None:
    get_client().head_bucket(Bucket=settings.r2_bucket_name)


def delete_prefix(prefix: str) -> int:
    """Delete every object under a prefix; returns the number deleted."""
    client = get_client()
    paginator = client.get_paginator("list_objects_v2")
    deleted_count = 0
    for page in paginator.paginate(Bucket=settings.r2_bucket_name, Prefix=prefix):
        objects = page.get("Contents", [])
        if not objects:
            continue
        response = client.delete_objects(
            Bucket=settings.r2_bucket_name,
            Delete={"Objects": [{"Key": obj["Key"]} for obj in objects]},
        )
        errors = response.get("Errors", [])
        if errors:
            logger.warning("r2_delete_partial_failure", prefix=prefix, errors=errors)
        deleted_count += len(objects) - len(errors)
    logger.info("r2_delete_prefix", prefix=prefix, deleted_count=deleted_count)
    return deleted_count
