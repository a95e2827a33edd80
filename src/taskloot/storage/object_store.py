"""Object storage for normalized puzzle images.

The engine only needs two calls, ``put`` and ``delete_many``, described by
the ``ObjectStorage`` protocol. ``OssObjectStorage`` implements it on Aliyun
OSS; the oss2 SDK is blocking, so every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from typing import Protocol
from urllib.parse import quote

import oss2
import structlog

from taskloot.config import Settings, get_settings
from taskloot.errors import StorageError

logger = structlog.get_logger()

UPLOAD_RETRIES = 3


class ObjectStorage(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` and return its public location."""
        ...

    async def delete_many(self, keys: Sequence[str]) -> None:
        ...


def _should_retry(exc: Exception) -> bool:
    if isinstance(exc, oss2.exceptions.ServerError):
        return exc.status >= 500 or exc.status in {408, 429}
    return isinstance(exc, (oss2.exceptions.RequestError, TimeoutError))


class OssObjectStorage:
    """Aliyun OSS adapter."""

    def __init__(self, settings: Settings | None = None, bucket: oss2.Bucket | None = None) -> None:
        self.settings = settings or get_settings()
        self._bucket = bucket
        self._public_domain = self.settings.oss_public_domain.rstrip("/")

    def _get_bucket(self) -> oss2.Bucket:
        if self._bucket is not None:
            return self._bucket
        if not (self.settings.oss_access_key and self.settings.oss_secret_key):
            raise StorageError("OSS credentials are not configured")
        endpoint = self.settings.oss_endpoint
        if not endpoint.startswith("http"):
            endpoint = f"https://{endpoint}"
        auth = oss2.Auth(self.settings.oss_access_key, self.settings.oss_secret_key)
        self._bucket = oss2.Bucket(
            auth,
            endpoint,
            self.settings.oss_bucket,
            connect_timeout=self.settings.oss_connect_timeout,
        )
        return self._bucket

    def public_url(self, key: str) -> str:
        return f"{self._public_domain}/{quote(key, safe='/')}"

    def _put_blocking(self, key: str, data: bytes, content_type: str) -> None:
        bucket = self._get_bucket()
        headers = {"Content-Type": content_type, "Cache-Control": "max-age=31536000"}
        for attempt in range(UPLOAD_RETRIES):
            try:
                bucket.put_object(key, data, headers=headers)
                return
            except Exception as exc:
                if attempt >= UPLOAD_RETRIES - 1 or not _should_retry(exc):
                    raise StorageError(f"Failed to upload {key}") from exc
                logger.warning("oss_upload_retry", key=key, attempt=attempt + 1, error=str(exc))
                time.sleep(min(6, 0.6 * (2**attempt)))

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        await asyncio.to_thread(self._put_blocking, key, data, content_type)
        logger.debug("oss_object_uploaded", key=key, size=len(data), content_type=content_type)
        return self.public_url(key)

    async def delete_many(self, keys: Sequence[str]) -> None:
        if not keys:
            return
        bucket = self._get_bucket()
        await asyncio.to_thread(bucket.batch_delete_objects, list(keys))
        logger.info("oss_objects_deleted", keys=list(keys))
