# File: civicsync/services/storage.py
"""File storage for issue images.

Uses Supabase Storage over REST when SUPABASE_URL and SUPABASE_SERVICE_ROLE
are set, otherwise the local UPLOAD_DIR served under /uploads.
"""
import logging
import uuid
from pathlib import Path

import requests

from civicsync.core.config import settings
from civicsync.core.errors import DependencyError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}


def _supabase_enabled() -> bool:
    return bool(settings.supabase_url and settings.supabase_service_role)


def _auth_headers() -> dict:
    return {"Authorization": f"Bearer {settings.supabase_service_role}"}


def make_object_key(folder: str, filename: str) -> str:
    ext = (filename.rsplit(".", 1)[-1] if "." in filename else "jpg").lower()
    return f"{folder}/{uuid.uuid4().hex}.{ext}"


def _local_path(public_id: str) -> Path:
    root = Path(settings.upload_dir).resolve()
    path = (root / public_id).resolve()
    if root not in path.parents:
        raise DependencyError(f"Refusing to touch {public_id!r} outside the upload directory")
    return path


def store(data: bytes, filename: str, content_type: str, folder: str = "issues") -> dict:
    """Persist one image and return ``{"url", "public_id"}``."""
    key = make_object_key(folder, filename or "image.jpg")
    if _supabase_enabled():
        bucket = settings.supabase_bucket
        url = f"{settings.supabase_url}/storage/v1/object/{bucket}/{key}"
        try:
            r = requests.post(url, headers={
                **_auth_headers(),
                "Content-Type": content_type,
                "x-upsert": "true",
            }, data=data, timeout=30)
            r.raise_for_status()
        except requests.RequestException as e:
            raise DependencyError("Failed to upload image") from e
        # public URL pattern (bucket must be public):
        return {"url": f"{settings.supabase_url}/storage/v1/object/public/{bucket}/{key}", "public_id": key}

    path = _local_path(key)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as e:
        raise DependencyError("Failed to upload image") from e
    base = settings.public_base_url.rstrip("/")
    return {"url": f"{base}/uploads/{key}", "public_id": key}


def delete(public_id: str) -> dict:
    """Delete one stored image; a missing object yields ``"not found"``."""
    if _supabase_enabled():
        url = f"{settings.supabase_url}/storage/v1/object/{settings.supabase_bucket}/{public_id}"
        try:
            r = requests.delete(url, headers=_auth_headers(), timeout=30)
        except requests.RequestException as e:
            raise DependencyError(f"Failed to delete image {public_id}") from e
        # supabase answers 400 with "not_found" for missing objects
        if r.status_code in (400, 404):
            return {"result": "not found", "deleted": public_id}
        if not r.ok:
            raise DependencyError(f"Failed to delete image {public_id}: HTTP {r.status_code}")
        return {"result": "ok", "deleted": public_id}

    path = _local_path(public_id)
    if not path.exists():
        return {"result": "not found", "deleted": public_id}
    try:
        path.unlink()
    except OSError as e:
        raise DependencyError(f"Failed to delete image {public_id}") from e
    return {"result": "ok", "deleted": public_id}


def discard(public_ids: list[str]) -> None:
    """Best-effort cleanup of images stored for a request that failed."""
    for public_id in public_ids:
        try:
            delete(public_id)
        except DependencyError:
            logger.error("Could not clean up orphaned image %s", public_id, exc_info=True)
