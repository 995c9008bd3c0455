"""Local object storage for contribution images.

Objects live under ``<data_dir>/storage/<bucket>/<path>`` and are served back
through the API, so the public reference is an API URL.
"""
import logging
import os
import re
import uuid

from plasticwatch.config import settings
from plasticwatch.utils.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_SAFE_COMPONENT = re.compile(r"^[A-Za-z0-9._-]+$")


def storage_root() -> str:
    return os.path.join(settings.data_dir, "storage")


def _clean_component(component: str, what: str) -> str:
    if not component or component in (".", "..") or not _SAFE_COMPONENT.match(component):
        raise ValidationError(f"Invalid {what}: {component!r}", field=what)
    return component


def clean_path(path: str) -> str:
    parts = [p for p in path.strip("/").split("/") if p]
    if not parts:
        raise ValidationError("Invalid path: empty", field="path")
    return "/".join(_clean_component(p, "path") for p in parts)


def generate_object_name(filename: str | None) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    if not re.match(r"^\.[a-z0-9]{1,8}$", ext):
        ext = ".jpg"
    return f"{uuid.uuid4().hex}{ext}"


def public_url(bucket: str, path: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/api/v1/storage/{bucket}/{path}"


def object_file_path(bucket: str, path: str) -> str:
    bucket = _clean_component(bucket, "bucket")
    return os.path.join(storage_root(), bucket, *clean_path(path).split("/"))


def save_object(bucket: str, content: bytes, path: str | None = None, filename: str | None = None) -> str:
    """Write an object and return its storage path. Existing objects are overwritten."""
    if not content:
        raise ValidationError("Empty upload", field="file")
    if len(content) > settings.max_image_size_bytes:
        raise ValidationError(
            f"File too large: {len(content)} bytes (max {settings.max_image_size_bytes})",
            field="file",
        )

    path = clean_path(path) if path else generate_object_name(filename)
    file_path = object_file_path(bucket, path)
    os.makedirs(os.path.dirname(file_path), exist_ok=True)
    with open(file_path, "wb") as f:
        f.write(content)

    logger.info("Stored %d bytes at %s/%s", len(content), bucket, path)
    return path


def resolve_object(bucket: str, path: str) -> str:
    file_path = object_file_path(bucket, path)
    if not os.path.isfile(file_path):
        raise NotFoundError("Object not found")
    return file_path
