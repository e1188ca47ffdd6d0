"""Photo storage for plant observations.

Two backends, picked by ``settings.photo_storage``:
  - local → files under ``media_root``, served from ``media_base_url``
  - s3    → objects in ``s3_bucket`` (any S3-compatible endpoint)

Both return a stable URL per stored photo. boto3 is synchronous, so S3
calls run in the threadpool.

Uploads are read into memory first (``read_uploads``) so the request can
be validated before anything is written. Photos stored for a request
that later fails are removed again with ``discard_photos``.
"""

import logging
import mimetypes
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from pathlib import Path

import boto3
from starlette.concurrency import run_in_threadpool

from growtrack.config import settings

logger = logging.getLogger("growtrack.storage")


@dataclass
class PhotoUpload:
    filename: str | None
    content_type: str | None
    payload: bytes


def photo_key(facility_id: str, plant_id: str, filename: str | None) -> str:
    suffix = Path(filename or "").suffix.lower() or ".jpg"
    return f"observations/{facility_id}/{plant_id}/{date.today():%Y%m%d}-{uuid.uuid4().hex}{suffix}"


class PhotoStorage(ABC):
    @abstractmethod
    async def save(self, key: str, payload: bytes, content_type: str | None) -> str:
        """Store the payload under ``key`` and return its public URL."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``; a missing key is not an error."""


class LocalPhotoStorage(PhotoStorage):
    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _write(self, key: str, payload: bytes) -> None:
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)

    async def save(self, key: str, payload: bytes, content_type: str | None) -> str:
        await run_in_threadpool(self._write, key, payload)
        return f"{self.base_url}/{key}"

    async def delete(self, key: str) -> None:
        await run_in_threadpool((self.root / key).unlink, missing_ok=True)


@lru_cache(maxsize=1)
def get_s3_client():
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint or None,
        region_name=settings.s3_region,
        aws_access_key_id=settings.s3_access_key_id or None,
        aws_secret_access_key=settings.s3_secret_access_key or None,
    )


class S3PhotoStorage(PhotoStorage):
    def __init__(self, bucket: str, client=None):
        self.bucket = bucket
        self.client = client or get_s3_client()

    def _url(self, key: str) -> str:
        if settings.s3_endpoint:
            return f"{settings.s3_endpoint.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{settings.s3_region}.amazonaws.com/{key}"

    async def save(self, key: str, payload: bytes, content_type: str | None) -> str:
        await run_in_threadpool(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=payload,
            ContentType=content_type or mimetypes.guess_type(key)[0] or "image/jpeg",
        )
        return self._url(key)

    async def delete(self, key: str) -> None:
        await run_in_threadpool(self.client.delete_object, Bucket=self.bucket, Key=key)


def get_photo_storage() -> PhotoStorage:
    """FastAPI dependency returning the configured backend."""
    if settings.photo_storage == "s3":
        return S3PhotoStorage(settings.s3_bucket)
    return LocalPhotoStorage(settings.media_root, settings.media_base_url)


async def read_uploads(uploads) -> list[PhotoUpload]:
    """Read multipart uploads, dropping empty file fields."""
    photos = []
    for upload in uploads:
        payload = await upload.read()
        if payload:
            photos.append(PhotoUpload(upload.filename, upload.content_type, payload))
    return photos


async def save_photos(
    storage: PhotoStorage, facility_id: str, plant_id: str, photos: list[PhotoUpload]
) -> dict[str, str]:
    """Store each photo; returns stored key → URL in upload order."""
    stored: dict[str, str] = {}
    try:
        for photo in photos:
            key = photo_key(facility_id, plant_id, photo.filename)
            stored[key] = await storage.save(key, photo.payload, photo.content_type)
    except Exception:
        await discard_photos(storage, list(stored))
        raise
    if stored:
        logger.info("Stored %d observation photos for plant %s", len(stored), plant_id)
    return stored


async def discard_photos(storage: PhotoStorage, keys: list[str]) -> None:
    for key in keys:
        try:
            await storage.delete(key)
        except Exception:
            logger.exception("Could not remove orphaned photo %s", key)
