"""MinIO storage service for audio file management."""

import asyncio
import logging
from functools import lru_cache
from typing import BinaryIO
from uuid import UUID

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError

from logbook.core.config import settings
from logbook.core.exceptions import AudioUnreadableError, StorageError

logger = logging.getLogger(__name__)


def build_storage_key(client_id: UUID, entry_id: UUID, recording_id: UUID, file_extension: str) -> str:
    """Hierarchical object key: client_id/entry_id/recording_id.ext"""
    return f"{client_id}/{entry_id}/{recording_id}.{file_extension}"


class MinIOService:
    """
    MinIO storage service for recording audio.

    The worker only ever reads from storage; uploads happen on the request
    path and deletions when a recording is removed.
    """

    def __init__(self) -> None:
        """
        Initialize MinIO client with application settings.

        Raises:
            RuntimeError: If MinIO client initialization fails
        """
        try:
            logger.info(f"Initializing MinIO client (endpoint={settings.MINIO_ENDPOINT})")

            self.client = Minio(
                endpoint=settings.MINIO_ENDPOINT,
                access_key=settings.MINIO_ACCESS_KEY,
                secret_key=settings.MINIO_SECRET_KEY,
                secure=settings.MINIO_USE_SSL,
                region=settings.MINIO_REGION,
            )
            self.recordings_bucket = settings.MINIO_BUCKET_RECORDINGS

            logger.info("MinIO client initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize MinIO client: {e}")
            raise RuntimeError(f"MinIO client initialization failed: {e}") from e

    @property
    def bucket(self) -> str:
        return self.recordings_bucket

    async def ensure_buckets_exist(self) -> None:
        """
        Ensure the recordings bucket exists, create if missing.

        Should be called on application startup.
        """

        def _create_bucket_if_not_exists() -> None:
            try:
                if not self.client.bucket_exists(self.recordings_bucket):
                    logger.info(f"Creating bucket: {self.recordings_bucket}")
                    self.client.make_bucket(self.recordings_bucket)
                else:
                    logger.debug(f"Bucket already exists: {self.recordings_bucket}")
            except S3Error as e:
                logger.error(f"Failed to create bucket {self.recordings_bucket}: {e}")
                raise RuntimeError(f"Failed to create bucket {self.recordings_bucket}: {e}") from e

        # MinIO client is synchronous
        await asyncio.to_thread(_create_bucket_if_not_exists)

    async def upload_recording(
        self,
        storage_key: str,
        file_data: BinaryIO,
        file_size: int,
        content_type: str,
    ) -> str:
        """
        Upload audio recording to MinIO.

        Args:
            storage_key: Object key (see build_storage_key)
            file_data: Binary file data stream
            file_size: File size in bytes
            content_type: MIME type (e.g., 'audio/webm', 'audio/mpeg')

        Returns:
            Storage key (path) in MinIO bucket

        Raises:
            StorageError: If upload fails
        """

        def _upload() -> None:
            try:
                logger.debug(f"Uploading to MinIO: {storage_key} ({file_size} bytes)")
                self.client.put_object(
                    bucket_name=self.recordings_bucket,
                    object_name=storage_key,
                    data=file_data,
                    length=file_size,
                    content_type=content_type,
                )
                logger.info(f"Upload complete: {storage_key}")
            except (S3Error, HTTPError) as e:
                logger.error(f"Upload failed for {storage_key}: {e}")
                raise StorageError(f"Failed to store audio {storage_key}: {e}") from e

        await asyncio.to_thread(_upload)
        return storage_key

    async def download_recording(self, storage_key: str) -> bytes:
        """
        Download audio recording from MinIO.

        Args:
            storage_key: Path to file in MinIO bucket

        Returns:
            File data as bytes

        Raises:
            AudioUnreadableError: If the object is missing or cannot be read
        """

        def _download() -> bytes:
            response = None
            try:
                response = self.client.get_object(
                    bucket_name=self.recordings_bucket,
                    object_name=storage_key,
                )
                return response.read()
            except S3Error as e:
                raise AudioUnreadableError(f"Audio file {storage_key} is unreadable: {e.code}: {e.message}") from e
            except HTTPError as e:
                raise AudioUnreadableError(f"Audio file {storage_key} could not be read: {e}") from e
            finally:
                if response is not None:
                    response.close()
                    response.release_conn()

        return await asyncio.to_thread(_download)

    async def delete_recording(self, storage_key: str) -> None:
        """
        Delete audio recording from MinIO.

        Raises:
            StorageError: If deletion fails
        """

        def _delete() -> None:
            try:
                self.client.remove_object(
                    bucket_name=self.recordings_bucket,
                    object_name=storage_key,
                )
            except S3Error as e:
                raise StorageError(f"Failed to delete audio {storage_key}: {e}") from e

        await asyncio.to_thread(_delete)

    async def ping(self) -> bool:
        """Readiness probe: can we see the recordings bucket?"""
        return await asyncio.to_thread(self.client.bucket_exists, self.recordings_bucket)


@lru_cache
def get_minio_service() -> MinIOService:
    """Get cached MinIO service instance."""
    return MinIOService()
