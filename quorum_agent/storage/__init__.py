# Blob Store Package
# Backends for the shared configuration blob and the pseudo-lock markers

from .base import BlobMetadata, BlobObject, BlobStore
from .memory import InMemoryBlobStore
from .s3 import S3BlobStore, is_absent_error

__all__ = [
    "BlobStore",
    "BlobObject",
    "BlobMetadata",
    "InMemoryBlobStore",
    "S3BlobStore",
    "is_absent_error",
    "create_blob_store",
]


def create_blob_store(storage_settings) -> BlobStore:
    """Create the blob store selected by the storage settings."""
    if storage_settings.backend == "memory":
        return InMemoryBlobStore()
    if storage_settings.backend == "s3":
        return S3BlobStore(region_name=storage_settings.region, endpoint_url=storage_settings.endpoint_url)
    raise ValueError(f"Unknown storage backend: {storage_settings.backend}")
