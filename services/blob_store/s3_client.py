"""AWS S3 blob store for entity photos."""

import logging
import time
from typing import List, Optional

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError

from shared.errors import NetworkError, NotFoundError, SyncError

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"404", "NoSuchKey", "NotFound"}


class BlobStore:
    """Handles S3 upload, signing, download and deletion of photos."""

    def __init__(
        self,
        bucket_name: str,
        region: str = "us-east-1",
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client=None,
        http_client: Optional[httpx.AsyncClient] = None,
        signed_url_expiration: int = 3600,
        download_timeout: float = 30.0
    ):
        """
        Initialize the blob store.

        Args:
            bucket_name: S3 bucket name
            region: AWS region
            access_key_id: AWS access key ID (optional, uses default credentials if not provided)
            secret_access_key: AWS secret access key (optional)
            client: Pre-built boto3 S3 client (optional)
            http_client: Shared httpx client for downloads (optional)
            signed_url_expiration: Default validity of signed URLs in seconds
            download_timeout: Timeout for photo downloads in seconds
        """
        self.bucket_name = bucket_name
        self.region = region
        self.signed_url_expiration = signed_url_expiration
        self.download_timeout = download_timeout
        self.http_client = http_client

        if client is not None:
            self.s3_client = client
        elif access_key_id and secret_access_key:
            self.s3_client = boto3.client(
                's3',
                region_name=region,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key
            )
        else:
            # Use default credentials (from environment or IAM role)
            self.s3_client = boto3.client('s3', region_name=region)

    @staticmethod
    def photo_key(namespace: str, parent_entity_id: str, index: int) -> str:
        return f"{namespace}/{parent_entity_id}/photo_{int(time.time() * 1000)}_{index}.jpg"

    async def upload(
        self,
        payloads: List[bytes],
        parent_entity_id: str,
        namespace: str = "events",
        content_type: str = "image/jpeg"
    ) -> List[str]:
        """
        Upload photos under ``<namespace>/<parent_entity_id>/``.

        The batch is all-or-nothing for the caller: the first failure
        removes whatever was already uploaded and raises.

        Args:
            payloads: Image binary data, one entry per photo
            parent_entity_id: Id of the owning entity
            namespace: Top-level key prefix (events, bucket_list_items, ...)
            content_type: MIME type of the images

        Returns:
            Storage keys in the same order as ``payloads``

        Raises:
            NetworkError: If any upload fails
        """
        keys: List[str] = []

        for index, payload in enumerate(payloads):
            key = self.photo_key(namespace, parent_entity_id, index)
            try:
                await self._put(key, payload, content_type)
            except NetworkError:
                if keys:
                    await self.delete_many(keys)
                raise
            keys.append(key)

        logger.info(f"Uploaded {len(keys)} photos for {namespace}/{parent_entity_id}")
        return keys

    async def upload_profile_picture(self, payload: bytes, couple_id: str) -> str:
        """Upload a couple's profile picture, replacing any previous one."""
        key = f"profile_pictures/{couple_id}.jpg"
        await self._put(key, payload, "image/jpeg")
        logger.info(f"Successfully uploaded profile picture to S3 with key: {key}")
        return key

    async def get_signed_url(self, key: str, expiration: Optional[int] = None) -> str:
        """
        Generate a presigned GET URL for an existing object.

        Args:
            key: S3 object key (path)
            expiration: URL expiration time in seconds (defaults to the store setting)

        Returns:
            Presigned URL

        Raises:
            NotFoundError: If the object does not exist
            NetworkError: If S3 could not be reached or refused the request
        """
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_KEY_CODES:
                raise NotFoundError(f"Object not found in S3: {key}") from e
            logger.error(f"Failed to look up {key} in S3: {e}", exc_info=True)
            raise NetworkError(f"Failed to look up {key}: {e}") from e
        except BotoCoreError as e:
            logger.error(f"Failed to look up {key} in S3: {e}", exc_info=True)
            raise NetworkError(f"Failed to look up {key}: {e}") from e

        try:
            return self.s3_client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket_name, 'Key': key},
                ExpiresIn=expiration or self.signed_url_expiration
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned URL: {e}", exc_info=True)
            raise NetworkError(f"Failed to sign {key}: {e}") from e

    async def download_image(self, key: str) -> Optional[bytes]:
        """
        Fetch an object's bytes through a freshly signed URL.

        Returns:
            Image binary data, or None if signing or fetching failed
        """
        try:
            url = await self.get_signed_url(key)
            if self.http_client is not None:
                response = await self.http_client.get(url, timeout=self.download_timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, timeout=self.download_timeout)
            response.raise_for_status()
            return response.content
        except (SyncError, httpx.HTTPError) as e:
            logger.warning(f"Failed to download image {key}: {e}")
            return None

    async def delete(self, key: str) -> None:
        """
        Delete one object.

        Raises:
            NetworkError: If S3 rejected the delete
        """
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete image from S3: {e}", exc_info=True)
            raise NetworkError(f"Failed to delete {key}: {e}") from e
        logger.info(f"Successfully deleted image from S3: {key}")

    async def delete_many(self, keys: List[str]) -> List[str]:
        """
        Delete every key, continuing past individual failures.

        Returns:
            The keys that could not be deleted
        """
        failed: List[str] = []
        for key in keys:
            try:
                await self.delete(key)
            except NetworkError:
                failed.append(key)

        if failed:
            logger.warning(f"Failed to delete {len(failed)} of {len(keys)} photos: {failed}")
        return failed

    async def _put(self, key: str, payload: bytes, content_type: str) -> None:
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=payload,
                ContentType=content_type
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload image to S3: {e}", exc_info=True)
            raise NetworkError(f"Failed to upload {key}: {e}") from e
