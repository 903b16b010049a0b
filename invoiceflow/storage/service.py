"""S3-compatible object storage service using MinIO.

Holds the archived original of every ingested invoice. Includes:
- Lazy client initialization
- Bucket auto-creation
- Retry with backoff on S3 transport errors
- Content-type detection

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import io
import logging
import mimetypes
from typing import BinaryIO

from minio import Minio
from minio.error import S3Error
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)


class StorageResult(BaseModel):
    """Result of storage operation.

    Attributes:
        success: Whether operation succeeded
        object_name: Full object path in storage
        bucket: Bucket name
        error: Error message if operation failed
        etag: Object ETag (hash) if available
        size: Object size in bytes if available
    """

    success: bool
    object_name: str | None = None
    bucket: str | None = None
    error: str | None = None
    etag: str | None = None
    size: int | None = None


class StorageService:
    """S3-compatible object storage service for invoice originals."""

    def __init__(self, settings: Settings) -> None:
        """Initialize storage service.

        Args:
            settings: Application settings with storage configuration
        """
        self.settings = settings
        self._client: Minio | None = None
        self._bucket_exists_cache: set[str] = set()

    def _get_client(self) -> Minio:
        """Get or create MinIO client (lazy initialization).

        Returns:
            Configured Minio client instance

        Raises:
            ValueError: If storage credentials are not configured
        """
        if self._client is None:
            if not self.settings.storage_access_key:
                raise ValueError(
                    "Storage access key not configured. "
                    "Set APP_STORAGE_ACCESS_KEY environment variable."
                )
            if not self.settings.storage_secret_key:
                raise ValueError(
                    "Storage secret key not configured. "
                    "Set APP_STORAGE_SECRET_KEY environment variable."
                )

            self._client = Minio(
                endpoint=self.settings.storage_endpoint,
                access_key=self.settings.storage_access_key,
                secret_key=self.settings.storage_secret_key,
                secure=self.settings.storage_secure,
            )
            logger.info(f"MinIO client initialized for endpoint: {self.settings.storage_endpoint}")

        return self._client

    def is_available(self) -> bool:
        """Check if storage credentials are configured.

        Returns:
            True if access and secret keys are set
        """
        return bool(self.settings.storage_access_key and self.settings.storage_secret_key)

    def health_check(self) -> bool:
        """Check if storage backend is reachable.

        Returns:
            True if MinIO server responds to list_buckets
        """
        if not self.is_available():
            return False

        try:
            client = self._get_client()
            client.list_buckets()
            return True
        except Exception as e:
            logger.warning(f"Storage health check failed: {e}")
            return False

    def _ensure_bucket(self, bucket: str) -> None:
        """Ensure bucket exists, create if missing.

        Args:
            bucket: Bucket name to check/create
        """
        if bucket in self._bucket_exists_cache:
            return

        client = self._get_client()
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
            logger.info(f"Created bucket: {bucket}")

        self._bucket_exists_cache.add(bucket)

    @staticmethod
    def _detect_content_type(filename: str) -> str:
        """Detect content type from filename.

        Args:
            filename: File name with extension

        Returns:
            MIME type string
        """
        content_type, _ = mimetypes.guess_type(filename)
        return content_type or "application/octet-stream"

    @retry(
        retry=retry_if_exception_type(S3Error),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def _put_object(
        self, bucket: str, object_name: str, data: bytes, content_type: str
    ) -> str | None:
        client = self._get_client()
        self._ensure_bucket(bucket)

        data_stream: BinaryIO = io.BytesIO(data)
        result = client.put_object(
            bucket_name=bucket,
            object_name=object_name,
            data=data_stream,
            length=len(data),
            content_type=content_type,
        )
        etag: str | None = result.etag
        return etag

    def upload_bytes(
        self,
        data: bytes,
        object_name: str,
        content_type: str | None = None,
        bucket: str | None = None,
    ) -> StorageResult:
        """Upload bytes to storage.

        Args:
            data: Bytes to upload
            object_name: Target object name in storage
            content_type: MIME type (auto-detected if not provided)
            bucket: Target bucket (defaults to settings.storage_bucket)

        Returns:
            StorageResult with upload details
        """
        bucket = bucket or self.settings.storage_bucket

        if content_type is None:
            content_type = self._detect_content_type(object_name)

        try:
            etag = self._put_object(bucket, object_name, data, content_type)
            logger.info(f"Uploaded {object_name} to {bucket} ({len(data)} bytes)")

            return StorageResult(
                success=True,
                object_name=object_name,
                bucket=bucket,
                etag=etag,
                size=len(data),
            )

        except S3Error as e:
            logger.error(f"S3 error uploading {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except Exception as e:
            logger.error(f"Error uploading {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=str(e),
            )

    def delete_object(
        self,
        object_name: str,
        bucket: str | None = None,
    ) -> StorageResult:
        """Delete object from storage.

        Args:
            object_name: Object name to delete
            bucket: Bucket name (defaults to settings.storage_bucket)

        Returns:
            StorageResult indicating success or failure
        """
        bucket = bucket or self.settings.storage_bucket

        try:
            client = self._get_client()
            client.remove_object(bucket_name=bucket, object_name=object_name)

            logger.info(f"Deleted {object_name} from {bucket}")

            return StorageResult(
                success=True,
                object_name=object_name,
                bucket=bucket,
            )

        except S3Error as e:
            logger.error(f"S3 error deleting {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except Exception as e:
            logger.error(f"Error deleting {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=str(e),
            )
