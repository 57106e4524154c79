"""Unit tests for the S3 blob store.

Tests cover:
- Batch upload ordering and all-or-nothing cleanup
- Signed URL generation and missing-object handling
- Image download through signed URLs
- Single and batch deletion
"""

import pytest
from unittest.mock import AsyncMock, Mock
import httpx
from botocore.exceptions import ClientError, EndpointConnectionError

from services.blob_store.s3_client import BlobStore
from shared.errors import NetworkError, NotFoundError


def client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def mock_s3():
    """Mock boto3 S3 client."""
    client = Mock()
    client.put_object = Mock()
    client.head_object = Mock()
    client.delete_object = Mock()
    client.generate_presigned_url = Mock(
        side_effect=lambda op, Params, ExpiresIn: f"https://signed.example/{Params['Key']}?ttl={ExpiresIn}"
    )
    return client


@pytest.fixture
def mock_http():
    client = AsyncMock(spec=httpx.AsyncClient)
    return client


@pytest.fixture
def blob_store(mock_s3, mock_http):
    return BlobStore(bucket_name="lovelyapp", client=mock_s3, http_client=mock_http)


def ok_response(url: str, content: bytes) -> httpx.Response:
    return httpx.Response(200, content=content, request=httpx.Request("GET", url))


class TestUpload:
    """Tests for photo uploads."""

    @pytest.mark.asyncio
    async def test_keys_follow_payload_order(self, blob_store, mock_s3):
        keys = await blob_store.upload([b"one", b"two", b"three"], "e1")

        assert len(keys) == 3
        for index, key in enumerate(keys):
            assert key.startswith("events/e1/photo_")
            assert key.endswith(f"_{index}.jpg")

        bodies = [call.kwargs["Body"] for call in mock_s3.put_object.call_args_list]
        assert bodies == [b"one", b"two", b"three"]
        assert all(call.kwargs["ContentType"] == "image/jpeg" for call in mock_s3.put_object.call_args_list)

    @pytest.mark.asyncio
    async def test_namespace_prefixes_keys(self, blob_store):
        keys = await blob_store.upload([b"one"], "item-1", namespace="bucket_list_items")

        assert keys[0].startswith("bucket_list_items/item-1/")

    @pytest.mark.asyncio
    async def test_failure_removes_already_uploaded_keys(self, blob_store, mock_s3):
        mock_s3.put_object.side_effect = [None, None, client_error("500", "PutObject")]

        with pytest.raises(NetworkError):
            await blob_store.upload([b"1", b"2", b"3"], "e1")

        uploaded = [call.kwargs["Key"] for call in mock_s3.put_object.call_args_list[:2]]
        deleted = [call.kwargs["Key"] for call in mock_s3.delete_object.call_args_list]
        assert deleted == uploaded

    @pytest.mark.asyncio
    async def test_empty_batch(self, blob_store, mock_s3):
        assert await blob_store.upload([], "e1") == []
        mock_s3.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_profile_picture_key(self, blob_store, mock_s3):
        key = await blob_store.upload_profile_picture(b"face", "couple-1")

        assert key == "profile_pictures/couple-1.jpg"
        assert mock_s3.put_object.call_args.kwargs["Key"] == key


class TestSignedUrls:
    """Tests for signed URL generation."""

    @pytest.mark.asyncio
    async def test_signs_existing_object(self, blob_store, mock_s3):
        url = await blob_store.get_signed_url("events/e1/a.jpg")

        assert url == "https://signed.example/events/e1/a.jpg?ttl=3600"
        mock_s3.head_object.assert_called_once_with(Bucket="lovelyapp", Key="events/e1/a.jpg")

    @pytest.mark.asyncio
    async def test_custom_expiration(self, blob_store):
        url = await blob_store.get_signed_url("k", expiration=60)

        assert url.endswith("ttl=60")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
    async def test_missing_object(self, blob_store, mock_s3, code):
        mock_s3.head_object.side_effect = client_error(code)

        with pytest.raises(NotFoundError):
            await blob_store.get_signed_url("missing.jpg")
        mock_s3.generate_presigned_url.assert_not_called()

    @pytest.mark.asyncio
    async def test_access_denied_is_network_error(self, blob_store, mock_s3):
        mock_s3.head_object.side_effect = client_error("403")

        with pytest.raises(NetworkError):
            await blob_store.get_signed_url("k")

    @pytest.mark.asyncio
    async def test_unreachable_endpoint_is_network_error(self, blob_store, mock_s3):
        mock_s3.head_object.side_effect = EndpointConnectionError(endpoint_url="https://s3.example")

        with pytest.raises(NetworkError):
            await blob_store.get_signed_url("k")


class TestDownload:
    """Tests for image downloads."""

    @pytest.mark.asyncio
    async def test_download_fetches_signed_url(self, blob_store, mock_http):
        mock_http.get.return_value = ok_response("https://signed.example/k", b"jpeg-bytes")

        assert await blob_store.download_image("k") == b"jpeg-bytes"
        mock_http.get.assert_called_once_with("https://signed.example/k?ttl=3600", timeout=30.0)

    @pytest.mark.asyncio
    async def test_missing_object_downloads_nothing(self, blob_store, mock_s3, mock_http):
        mock_s3.head_object.side_effect = client_error("404")

        assert await blob_store.download_image("k") is None
        mock_http.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_http_error_is_none(self, blob_store, mock_http):
        mock_http.get.return_value = httpx.Response(500, request=httpx.Request("GET", "https://signed.example/k"))

        assert await blob_store.download_image("k") is None

    @pytest.mark.asyncio
    async def test_transport_error_is_none(self, blob_store, mock_http):
        mock_http.get.side_effect = httpx.ConnectError("offline")

        assert await blob_store.download_image("k") is None


class TestDelete:
    """Tests for deletion."""

    @pytest.mark.asyncio
    async def test_delete(self, blob_store, mock_s3):
        await blob_store.delete("k1")

        mock_s3.delete_object.assert_called_once_with(Bucket="lovelyapp", Key="k1")

    @pytest.mark.asyncio
    async def test_delete_failure(self, blob_store, mock_s3):
        mock_s3.delete_object.side_effect = client_error("500", "DeleteObject")

        with pytest.raises(NetworkError):
            await blob_store.delete("k1")

    @pytest.mark.asyncio
    async def test_delete_many_continues_past_failures(self, blob_store, mock_s3):
        def delete_object(Bucket, Key):
            if Key == "k1":
                raise client_error("500", "DeleteObject")

        mock_s3.delete_object.side_effect = delete_object

        failed = await blob_store.delete_many(["k1", "k2", "k3"])

        assert failed == ["k1"]
        assert mock_s3.delete_object.call_count == 3
