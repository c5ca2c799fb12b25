"""
Supabase Storage service for staged uploads.

The front end uploads client documents straight to the staging bucket and
sends us their URLs. We only need to read them once and delete them after
analysis.
"""

import logging
from urllib.parse import unquote, urlparse

from app import config
from app.db import get_supabase_admin

logger = logging.getLogger(__name__)


def _require_client():
    client = get_supabase_admin()
    if client is None:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required for storage operations")
    return client


def to_storage_path(url_or_path: str, bucket: str | None = None) -> str:
    """
    Reduce a signed/public Storage URL to a path inside the bucket.

    Example:
        https://x.supabase.co/storage/v1/object/sign/staging/u1/lease.pdf?token=abc
        -> "u1/lease.pdf"

    Plain paths are returned unchanged (minus any leading bucket name).
    """
    bucket = bucket or config.STAGING_BUCKET
    storage_path = url_or_path

    if url_or_path.startswith("http"):
        parsed = urlparse(url_or_path)
        path_parts = parsed.path.split("/object/")
        if len(path_parts) > 1:
            storage_path = path_parts[1]
            for prefix in ("sign/", "public/", "authenticated/"):
                if storage_path.startswith(prefix):
                    storage_path = storage_path[len(prefix):]
                    break
        storage_path = unquote(storage_path)

    if storage_path.startswith(f"{bucket}/"):
        storage_path = storage_path[len(bucket) + 1:]
    return storage_path


def download_staged_file(url_or_path: str) -> bytes:
    """
    Fetch a staged upload's bytes.

    Raises:
        Exception: if the download fails.
    """
    client = _require_client()
    storage_path = to_storage_path(url_or_path)

    try:
        return client.storage.from_(config.STAGING_BUCKET).download(storage_path)
    except Exception as e:
        raise Exception(f"Failed to download staged file {storage_path}: {str(e)}")


def delete_staged_file(url_or_path: str) -> bool:
    """
    Delete a staged upload.

    Returns:
        True if deleted, False if the file was not found.

    Raises:
        Exception: if deletion fails (other than file not found).
    """
    client = _require_client()
    storage_path = to_storage_path(url_or_path)

    try:
        result = client.storage.from_(config.STAGING_BUCKET).remove([storage_path])
    except Exception as e:
        raise Exception(f"Failed to delete staged file {storage_path}: {str(e)}")

    if result and len(result) > 0:
        logger.info("Deleted staged file: %s", storage_path)
        return True
    return False
