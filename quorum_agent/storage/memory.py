"""
In-memory blob store.

Used for local runs and tests. Timestamps are milliseconds and by default
strictly increase per key on every put, so two writes never share a version.
``timestamp_resolution_ms`` truncates them instead, the way S3 reports
LastModified in whole seconds. ETags are the MD5 of the content, as S3 computes
them for single-part uploads. An optional ``list_delay`` hides freshly written
keys from listings for a while to model an eventually consistent store.
"""

import asyncio
import hashlib
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .base import BlobMetadata, BlobObject, BlobStore


@dataclass
class _Entry:
    data: bytes
    last_modified_ms: int
    etag: str
    visible_at: float

    def metadata(self, key: str) -> BlobMetadata:
        return BlobMetadata(key, len(self.data), self.last_modified_ms, self.etag)


def content_etag(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest()}"'


class InMemoryBlobStore(BlobStore):
    def __init__(
        self,
        list_delay: float = 0.0,
        forbidden_keys=None,
        timestamp_resolution_ms: int = 1,
        clock: Callable[[], float] = time.time,
    ):
        self.list_delay = list_delay
        self.forbidden_keys = set(forbidden_keys or [])
        self.timestamp_resolution_ms = timestamp_resolution_ms
        self.clock = clock
        self._objects: Dict[str, Dict[str, _Entry]] = {}
        self._last_modified: Dict[tuple, int] = {}
        self._lock = asyncio.Lock()

        self.put_count = 0
        self.delete_count = 0

    def _bucket(self, bucket: str) -> Dict[str, _Entry]:
        return self._objects.setdefault(bucket, {})

    def _next_timestamp(self, bucket: str, key: str) -> int:
        now_ms = int(self.clock() * 1000)
        if self.timestamp_resolution_ms > 1:
            return now_ms - now_ms % self.timestamp_resolution_ms

        previous = self._last_modified.get((bucket, key), 0)
        stamp = max(now_ms, previous + 1)
        self._last_modified[(bucket, key)] = stamp
        return stamp

    async def get_object(self, bucket: str, key: str) -> Optional[BlobObject]:
        if key in self.forbidden_keys:
            return None
        async with self._lock:
            entry = self._bucket(bucket).get(key)
            if entry is None:
                return None
            return BlobObject(metadata=entry.metadata(key), data=entry.data)

    async def get_metadata(self, bucket: str, key: str) -> Optional[BlobMetadata]:
        if key in self.forbidden_keys:
            return None
        async with self._lock:
            entry = self._bucket(bucket).get(key)
            if entry is None:
                return None
            return entry.metadata(key)

    async def put_object(self, bucket: str, key: str, data: bytes) -> BlobMetadata:
        async with self._lock:
            entry = _Entry(
                data=bytes(data),
                last_modified_ms=self._next_timestamp(bucket, key),
                etag=content_etag(data),
                visible_at=time.monotonic() + self.list_delay,
            )
            self._bucket(bucket)[key] = entry
            self.put_count += 1
            return entry.metadata(key)

    async def list_keys(self, bucket: str, prefix: str) -> List[str]:
        now = time.monotonic()
        async with self._lock:
            return sorted(
                key
                for key, entry in self._bucket(bucket).items()
                if key.startswith(prefix) and entry.visible_at <= now
            )

    async def delete_object(self, bucket: str, key: str) -> None:
        async with self._lock:
            if self._bucket(bucket).pop(key, None) is not None:
                self.delete_count += 1

    def keys(self, bucket: str) -> List[str]:
        """All keys of a bucket, ignoring the listing delay."""
        return sorted(self._bucket(bucket))
