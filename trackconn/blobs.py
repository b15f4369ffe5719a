"""Blob storage for media uploads, backed by Cloudinary."""

import logging
import os
import re
import secrets
import time
from dataclasses import dataclass

import cloudinary
import cloudinary.uploader

from .core import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

if settings.CLOUDINARY_URL:
    cloudinary.config(cloudinary_url=settings.CLOUDINARY_URL)


class BlobStoreError(Exception):
    """Raised when the blob store rejects or fails an operation."""


@dataclass
class StoredBlob:
    """Location of an uploaded blob."""

    url: str
    key: str
    size: int | None = None


def is_configured() -> bool:
    """Whether uploads can be performed."""
    return bool(get_settings().CLOUDINARY_URL)


def is_type_allowed(content_type: str | None) -> bool:
    """Whether ``content_type`` is accepted for media uploads."""
    return content_type in get_settings().MEDIA_ALLOWED_TYPES


def generate_key(user_id: int, filename: str | None) -> str:
    """
    Build a unique storage key for an upload.

    The key is ``<user_id>/<millis>-<random>-<sanitized name>``.
    """
    stem = os.path.splitext(os.path.basename(filename or "upload"))[0]
    sanitized = re.sub(r"[^a-zA-Z0-9]", "_", stem).lower() or "upload"
    return f"{user_id}/{int(time.time() * 1000)}-{secrets.token_hex(8)}-{sanitized}"


def upload_blob(content: bytes, key: str) -> StoredBlob:
    """
    Upload binary content under ``key``.

    Args:
        content (bytes): File content.
        key (str): Storage key from :func:`generate_key`.

    Raises:
        BlobStoreError: If the upload fails or returns no URL.

    Returns:
        StoredBlob: URL and storage key of the stored blob.
    """
    try:
        result = cloudinary.uploader.upload(
            content,
            folder=get_settings().MEDIA_FOLDER,
            public_id=key,
            resource_type="image",
        )
    except Exception as exc:
        logger.exception("uploading blob %s failed", key)
        raise BlobStoreError("Failed to upload media") from exc

    url = result.get("secure_url")
    if not url:
        raise BlobStoreError("Failed to upload media")
    return StoredBlob(
        url=url, key=result.get("public_id", key), size=result.get("bytes")
    )


def delete_blob(key: str) -> None:
    """
    Delete a blob by storage key.

    Raises:
        BlobStoreError: If the blob store reports a failure.
    """
    try:
        cloudinary.uploader.destroy(key, resource_type="image")
    except Exception as exc:
        logger.exception("deleting blob %s failed", key)
        raise BlobStoreError("Failed to delete media") from exc


def discard_blobs(keys: list[str]) -> None:
    """Delete blobs whose media rows are gone; failures leave orphans behind."""
    if not is_configured():
        return
    for key in keys:
        try:
            delete_blob(key)
        except BlobStoreError:
            logger.warning("blob %s left orphaned", key)
