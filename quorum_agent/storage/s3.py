import asyncio
import functools
import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from .base import BlobMetadata, BlobObject, BlobStore

logger = logging.getLogger(__name__)

# S3 answers 403 instead of 404 for a missing key when the caller lacks
# s3:ListBucket, so both mean "not there yet".
ABSENT_ERROR_CODES = frozenset(["404", "403", "NoSuchKey", "NotFound", "AccessDenied", "Forbidden"])


def is_absent_error(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in ABSENT_ERROR_CODES or status in (403, 404)


def _to_millis(last_modified) -> int:
    return int(last_modified.timestamp() * 1000)


class S3BlobStore(BlobStore):
    """Blob store backed by S3 through boto3.

    boto3 is synchronous, so every call runs on the event loop's default
    executor and only blocks the awaiting task.
    """

    def __init__(
        self,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Any = None,
    ) -> None:
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self.client = client

    async def connect(self):
        if self.client is not None:
            return

        loop = asyncio.get_running_loop()
        self.client = await loop.run_in_executor(
            None,
            functools.partial(
                boto3.client,
                "s3",
                region_name=self.region_name,
                endpoint_url=self.endpoint_url,
            ),
        )

    async def _call(self, method: str, **kwargs) -> Dict[str, Any]:
        await self.connect()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(getattr(self.client, method), **kwargs))

    async def get_object(self, bucket: str, key: str) -> Optional[BlobObject]:
        try:
            response = await self._call("get_object", Bucket=bucket, Key=key)
        except ClientError as e:
            if is_absent_error(e):
                logger.debug(f"s3://{bucket}/{key} is absent ({e.response.get('Error', {}).get('Code')})")
                return None
            raise

        body = response["Body"]
        try:
            loop = asyncio.get_running_loop()
            data = await loop.run_in_executor(None, body.read)
        finally:
            body.close()

        metadata = BlobMetadata(
            key=key,
            content_length=response.get("ContentLength", len(data)),
            last_modified_ms=_to_millis(response["LastModified"]),
            etag=response.get("ETag"),
        )
        return BlobObject(metadata=metadata, data=data)

    async def get_metadata(self, bucket: str, key: str) -> Optional[BlobMetadata]:
        try:
            response = await self._call("head_object", Bucket=bucket, Key=key)
        except ClientError as e:
            if is_absent_error(e):
                return None
            raise

        return BlobMetadata(
            key=key,
            content_length=response.get("ContentLength", 0),
            last_modified_ms=_to_millis(response["LastModified"]),
            etag=response.get("ETag"),
        )

    async def put_object(self, bucket: str, key: str, data: bytes) -> BlobMetadata:
        await self._call("put_object", Bucket=bucket, Key=key, Body=data)

        # PutObject does not report LastModified
        metadata = await self.get_metadata(bucket, key)
        if metadata is None:
            raise RuntimeError(f"s3://{bucket}/{key} was not readable after upload")
        return metadata

    async def list_keys(self, bucket: str, prefix: str) -> List[str]:
        keys = []
        kwargs = {"Bucket": bucket, "Prefix": prefix}

        while True:
            response = await self._call("list_objects_v2", **kwargs)
            keys.extend(item["Key"] for item in response.get("Contents", []))

            if not response.get("IsTruncated"):
                break
            kwargs["ContinuationToken"] = response["NextContinuationToken"]

        return keys

    async def delete_object(self, bucket: str, key: str) -> None:
        await self._call("delete_object", Bucket=bucket, Key=key)

    async def close(self):
        if self.client is not None:
            self.client.close()
            self.client = None
