"""
Factory module for creating storage system instances.
"""

import logging
from typing import Callable

# Suppress boto3/botocore logging BEFORE importing any boto3-related modules
logging.getLogger('botocore').setLevel(logging.CRITICAL)
logging.getLogger('botocore.credentials').setLevel(logging.CRITICAL)
logging.getLogger('boto3').setLevel(logging.CRITICAL)
logging.getLogger('aioboto3').setLevel(logging.CRITICAL)
logging.getLogger('aiobotocore').setLevel(logging.CRITICAL)
logging.getLogger('urllib3').setLevel(logging.CRITICAL)
logging.getLogger('s3transfer').setLevel(logging.CRITICAL)

from s3bench.systems.base import ObjectStorageSystem
from s3bench.configuration import (
    S3_ENDPOINT,
    AWS_ACCESS_KEY_ID,
    AWS_SECRET_ACCESS_KEY,
    AWS_REGION,
)

logger = logging.getLogger(__name__)


def create_storage_system(
    bucket: str,
    concurrency: int,
    region: str = None,
    access_key: str = None,
    secret_key: str = None,
    endpoint: str = None,
) -> ObjectStorageSystem:
    """Create a storage system whose connection pool matches ``concurrency``.

    Args:
        bucket: Bucket the system operates on
        concurrency: In-flight request bound; sizes the connection pool
        region: Bucket region (default: AWS_REGION)
        access_key: Access key (default: AWS_ACCESS_KEY_ID, then the default chain)
        secret_key: Secret key (default: AWS_SECRET_ACCESS_KEY, then the default chain)
        endpoint: Custom endpoint for S3-compatible stores (default: S3_ENDPOINT)

    Raises:
        ValueError: If concurrency is not positive or the bucket is empty
    """
    if concurrency < 1:
        raise ValueError(f"Concurrency must be positive, got {concurrency}")
    if not bucket:
        raise ValueError("A bucket name is required")

    credentials = {
        "access_key_id": access_key or AWS_ACCESS_KEY_ID,
        "secret_access_key": secret_key or AWS_SECRET_ACCESS_KEY,
        "region_name": region or AWS_REGION,
    }
    return ObjectStorageSystem(
        endpoint=endpoint or S3_ENDPOINT,
        bucket_name=bucket,
        credentials=credentials,
        max_pool_connections=concurrency,
    )


def storage_factory_for(
    bucket: str,
    region: str = None,
    access_key: str = None,
    secret_key: str = None,
    endpoint: str = None,
) -> Callable[[int], ObjectStorageSystem]:
    """Bind everything but the concurrency level, for drivers that build one client per round."""

    def factory(concurrency: int) -> ObjectStorageSystem:
        return create_storage_system(
            bucket,
            concurrency,
            region=region,
            access_key=access_key,
            secret_key=secret_key,
            endpoint=endpoint,
        )

    return factory
