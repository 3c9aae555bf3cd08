"""
Tests for the S3 blob store, with a mocked boto3 client.
"""

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from botocore.response import StreamingBody

from editorial.core.error_handling import ExternalFailureError, NotFoundError
from editorial.services.blob_store import S3BlobStore

pytestmark = [pytest.mark.asyncio, pytest.mark.s3]


def client_error(code: str, operation: str) -> ClientError:
    return ClientError(error_response={"Error": {"Code": code, "Message": code}}, operation_name=operation)


@pytest.fixture
def s3_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def store(s3_client) -> S3BlobStore:
    return S3BlobStore(bucket="journal-files", region="us-east-1", client=s3_client)


class TestDelete:

    async def test_delete(self, store, s3_client):
        await store.delete_file("manuscripts/a/main.pdf")
        s3_client.delete_object.assert_called_once_with(Bucket="journal-files", Key="manuscripts/a/main.pdf")

    async def test_delete_failure(self, store, s3_client):
        s3_client.delete_object.side_effect = client_error("AccessDenied", "DeleteObject")
        with pytest.raises(ExternalFailureError):
            await store.delete_file("manuscripts/a/main.pdf")


class TestOpenStream:

    async def test_streams_body(self, store, s3_client):
        payload = b"%PDF-1.7 test document"
        s3_client.get_object.return_value = {
            "Body": StreamingBody(io.BytesIO(payload), len(payload)),
            "ContentType": "application/pdf",
            "ContentLength": len(payload),
        }

        download = await store.open_stream("manuscripts/a/main.pdf")

        assert download.content_type == "application/pdf"
        assert download.content_length == len(payload)
        assert b"".join(download.chunks) == payload

    async def test_missing_key(self, store, s3_client):
        s3_client.get_object.side_effect = client_error("NoSuchKey", "GetObject")
        with pytest.raises(NotFoundError):
            await store.open_stream("manuscripts/missing.pdf")

    async def test_other_failure(self, store, s3_client):
        s3_client.get_object.side_effect = client_error("InternalError", "GetObject")
        with pytest.raises(ExternalFailureError):
            await store.open_stream("manuscripts/a/main.pdf")
