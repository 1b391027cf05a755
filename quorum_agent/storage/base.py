"""
Blob store interface.

The configuration store and the pseudo-lock only need get/put/list/delete on
timestamped objects. The timestamp is the object's version; stores that have
one also report an entity tag, which changes whenever the content does.
Implementations report a missing object, and an object the agent is not
allowed to read, the same way: by returning None.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class BlobMetadata:
    """Metadata of a stored object."""

    key: str
    content_length: int
    last_modified_ms: int
    etag: Optional[str] = None


@dataclass(frozen=True)
class BlobObject:
    """A stored object and its metadata."""

    metadata: BlobMetadata
    data: bytes

    @property
    def last_modified_ms(self) -> int:
        return self.metadata.last_modified_ms

    @property
    def etag(self) -> Optional[str]:
        return self.metadata.etag


class BlobStore(ABC):
    """Abstract base class for blob store backends"""

    @abstractmethod
    async def get_object(self, bucket: str, key: str) -> Optional[BlobObject]:
        """Fetch an object, or None when it is absent or forbidden"""
        pass

    @abstractmethod
    async def get_metadata(self, bucket: str, key: str) -> Optional[BlobMetadata]:
        """Fetch an object's metadata, or None when it is absent or forbidden"""
        pass

    @abstractmethod
    async def put_object(self, bucket: str, key: str, data: bytes) -> BlobMetadata:
        """Upload an object and return the metadata of the stored version"""
        pass

    @abstractmethod
    async def list_keys(self, bucket: str, prefix: str) -> List[str]:
        """List the keys under a prefix (eventually consistent)"""
        pass

    @abstractmethod
    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object; deleting a missing object is not an error"""
        pass

    async def close(self) -> None:
        """Release client resources"""
        pass
