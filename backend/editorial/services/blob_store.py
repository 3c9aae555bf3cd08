"""
Blob storage for manuscript files using role-based S3 access.
"""
from dataclasses import dataclass
from typing import Iterator, Optional, Protocol
import asyncio
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from editorial.core.config import settings
from editorial.core.error_handling import ExternalFailureError, NotFoundError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass
class BlobDownload:
    """An open byte stream for a stored file."""
    key: str
    chunks: Iterator[bytes]
    content_type: str = "application/octet-stream"
    content_length: Optional[int] = None


class BlobStore(Protocol):
    async def delete_file(self, key: str) -> None:
        ...

    async def open_stream(self, key: str) -> BlobDownload:
        ...


class S3BlobStore:
    """S3-backed blob store using the ambient IAM role or environment credentials."""

    def __init__(self, bucket: str = None, region: str = None, client=None):
        self.bucket = bucket or settings.s3_bucket_name
        region = region or settings.aws_region
        try:
            self.s3_client = client or boto3.client('s3', region_name=region)
            logger.info(f"S3 client initialized for bucket {self.bucket} in region: {region}")
        except NoCredentialsError:
            logger.error("AWS credentials not found. Ensure an IAM role or AWS environment variables are set.")
            raise

    async def delete_file(self, key: str) -> None:
        """Delete a stored object. Failures raise ExternalFailureError."""
        try:
            await asyncio.to_thread(self.s3_client.delete_object, Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise ExternalFailureError(f"Failed to delete file {key}: {e}", service="blob_store", cause=e)
        logger.info(f"Deleted file from S3: {key}")

    async def open_stream(self, key: str) -> BlobDownload:
        """Open a streaming download of a stored object."""
        try:
            response = await asyncio.to_thread(self.s3_client.get_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise NotFoundError("File not found in storage", resource="file", resource_id=key)
            raise ExternalFailureError(f"Failed to download file {key}: {e}", service="blob_store", cause=e)
        except BotoCoreError as e:
            raise ExternalFailureError(f"Failed to download file {key}: {e}", service="blob_store", cause=e)

        logger.info(f"Streaming file from S3: {key}")
        return BlobDownload(
            key=key,
            chunks=response["Body"].iter_chunks(CHUNK_SIZE),
            content_type=response.get("ContentType") or "application/octet-stream",
            content_length=response.get("ContentLength")
        )
