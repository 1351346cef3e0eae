"""
Async base class for object storage systems.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Tuple

import aioboto3
import psutil
from aiohttp.client_exceptions import ClientPayloadError
from botocore.config import Config

from s3bench.common.errors import ObjectReadError
from s3bench.common.work_item import WorkItem
from s3bench.configuration import (
    CONNECT_TIMEOUT_SECONDS,
    READ_TIMEOUT_SECONDS,
    MAX_ERROR_RETRIES,
    CONNECTION_CHECK_INTERVAL,
    STREAM_CHUNK_SIZE,
)

logger = logging.getLogger(__name__)


class ObjectStream:
    """Chunked view of one get_object response body."""

    def __init__(self, key: str, body, content_length: Optional[int], chunk_size: int):
        self.key = key
        self.content_length = content_length
        self.received = 0
        self._body = body
        self._chunk_size = chunk_size

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield the body chunk by chunk.

        Raises:
            ObjectReadError: the body ended before the advertised content length
        """
        try:
            async for chunk in self._body.iter_chunks(self._chunk_size):
                self.received += len(chunk)
                yield chunk
        except ClientPayloadError as e:
            raise ObjectReadError(self.key, f"connection closed before all data received ({e})")

        if self.content_length is not None and self.received != self.content_length:
            raise ObjectReadError(
                self.key, f"expected {self.content_length} bytes, got {self.received} bytes"
            )


class ObjectStorageSystem:
    """Async S3 client with a connection pool sized to the concurrency level.

    Use as an async context manager; the underlying client only exists
    inside the ``async with`` block.
    """

    def __init__(
        self,
        endpoint: Optional[str],
        bucket_name: str,
        credentials: dict,
        max_pool_connections: int,
    ):
        self.endpoint = endpoint or None
        self.bucket_name = bucket_name
        self.credentials = credentials
        self.region_name = credentials.get("region_name")
        self.max_pool_connections = max_pool_connections

        # Single source of truth for config
        self._config = self._create_config()

        self.session = aioboto3.Session(
            aws_access_key_id=credentials.get("access_key_id") or None,
            aws_secret_access_key=credentials.get("secret_access_key") or None,
            region_name=self.region_name,
        )

        self.client = None
        self._request_count = 0

        logger.info(
            f"Initialized async storage for {self.endpoint or 'AWS S3'} "
            f"region={self.region_name} (max_pool_connections={max_pool_connections})"
        )

    def _create_config(self) -> Config:
        """Create the botocore config for this concurrency level."""
        return Config(
            max_pool_connections=self.max_pool_connections,
            connect_timeout=CONNECT_TIMEOUT_SECONDS,
            read_timeout=READ_TIMEOUT_SECONDS,
            retries={
                "max_attempts": MAX_ERROR_RETRIES,
                "mode": "standard",
            },
            tcp_keepalive=True,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        self.client = await self.session.client(
            "s3",
            endpoint_url=self.endpoint,
            config=self._config,
        ).__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.client:
            await self.client.__aexit__(exc_type, exc_val, exc_tb)
            self.client = None

    def _require_client(self):
        if not self.client:
            raise RuntimeError("Storage client not initialized. Use async context manager.")
        return self.client

    def get_connection_count(self) -> int:
        """Get number of established connections for this process."""
        try:
            process = psutil.Process(os.getpid())
            connections = process.net_connections(kind="inet")
            return len([c for c in connections if c.status == psutil.CONN_ESTABLISHED])
        except psutil.Error as e:
            logger.debug(f"Failed to get connection count: {e}")
            return -1

    def _track_request(self) -> None:
        self._request_count += 1
        if self._request_count % CONNECTION_CHECK_INTERVAL == 0:
            logger.info(
                f"Requests: {self._request_count}, "
                f"Active connections: {self.get_connection_count()}"
            )

    async def put_object(
        self,
        key: str,
        data: bytes,
        metadata: Dict[str, str] = None,
        bucket: str = None,
    ) -> None:
        """Write an object. Errors from the client propagate to the caller."""
        client = self._require_client()
        self._track_request()

        kwargs = {
            "Bucket": bucket or self.bucket_name,
            "Key": key,
            "Body": data,
            "ContentLength": len(data),
        }
        if metadata:
            kwargs["Metadata"] = metadata
        await client.put_object(**kwargs)

    @asynccontextmanager
    async def open_object(
        self, key: str, bucket: str = None, chunk_size: int = STREAM_CHUNK_SIZE
    ) -> AsyncIterator[ObjectStream]:
        """Open an object for chunked reading.

        The response body stays open for the duration of the ``async with``
        block and is released when it exits.
        """
        client = self._require_client()
        self._track_request()

        response = await client.get_object(Bucket=bucket or self.bucket_name, Key=key)
        async with response["Body"] as body:
            yield ObjectStream(key, body, response.get("ContentLength"), chunk_size)

    async def get_object(self, key: str, bucket: str = None) -> bytes:
        """Read an object's full content.

        Raises:
            ObjectReadError: the body ended before the advertised content length
        """
        async with self.open_object(key, bucket) as stream:
            return b"".join([chunk async for chunk in stream.chunks()])

    async def list_objects(
        self,
        prefix: str,
        continuation_token: str = None,
        bucket: str = None,
    ) -> Tuple[List[WorkItem], Optional[str]]:
        """List one page of objects under ``prefix``.

        Returns:
            Tuple of (items on this page, next continuation token or None)
        """
        client = self._require_client()
        bucket_name = bucket or self.bucket_name

        kwargs = {"Bucket": bucket_name, "Prefix": prefix}
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token
        response = await client.list_objects_v2(**kwargs)

        items = [
            WorkItem(bucket_name=bucket_name, key=entry["Key"], size=entry.get("Size"))
            for entry in response.get("Contents", [])
        ]
        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return items, next_token

    async def verify_connection(self) -> bool:
        """Verify storage connection and bucket access."""
        try:
            await self._require_client().head_bucket(Bucket=self.bucket_name)
            logger.info(f"✓ Successfully connected to bucket: {self.bucket_name}")
            return True
        except Exception as e:
            logger.error(f"✗ Connection verification failed: {e}")
            return False
