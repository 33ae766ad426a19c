"""
MinIO / S3 Object Store

Stores blobs in a MinIO bucket under a key prefix. Upload bodies are spooled
to a temporary file first so the object can be sent with its exact measured
length without holding the body in memory.
"""
import asyncio
import logging
import tempfile
from typing import AsyncIterator, BinaryIO, Iterator, Optional

from minio import Minio
from minio.error import S3Error

from oneshot.storage.exceptions import ObjectNotFoundError, PayloadTooLargeError, StorageError
from oneshot.storage.object_store import DEFAULT_CHUNK_SIZE, ObjectStore, StoredBlob, StoredObject

logger = logging.getLogger(__name__)

# Bodies up to this size stay in memory while spooling.
SPOOL_MAX_MEMORY = 8 * 1024 * 1024

_MISSING_CODES = {"NoSuchKey", "NoSuchObject", "NoSuchBucket"}


class _MinioObjectReader:
    """
    File-like wrapper around a MinIO GET response.

    Closing it also releases the pooled HTTP connection.
    """

    def __init__(self, response):
        self._response = response

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            return self._response.read()
        return self._response.read(size)

    def close(self) -> None:
        try:
            self._response.close()
        finally:
            self._response.release_conn()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class MinioObjectStore(ObjectStore):
    """
    Object store backed by a MinIO bucket

    Features:
    - Bounded-memory streaming uploads with exact size measurement
    - Rollback of partial uploads
    - Prefix-scoped listing for the orphan sweep
    """

    def __init__(
        self,
        minio_client: Minio,
        bucket_name: str,
        prefix: str = "uploads/",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        create_bucket: bool = True,
    ):
        """
        Initialize MinIO object store

        Args:
            minio_client: MinIO client instance
            bucket_name: Target bucket name
            prefix: Key prefix for every blob
            chunk_size: Read size used when streaming blobs back out
            create_bucket: Create the bucket if it does not exist
        """
        self.client = minio_client
        self.bucket_name = bucket_name
        self.prefix = prefix if not prefix or prefix.endswith("/") else f"{prefix}/"
        self.chunk_size = chunk_size

        if create_bucket:
            self._ensure_bucket()

        logger.info(
            f"MinioObjectStore initialized for bucket '{bucket_name}' "
            f"(prefix='{self.prefix}')"
        )

    def _ensure_bucket(self) -> None:
        try:
            if not self.client.bucket_exists(bucket_name=self.bucket_name):
                self.client.make_bucket(bucket_name=self.bucket_name)
                logger.info(f"Created bucket '{self.bucket_name}'")
        except S3Error as e:
            raise StorageError(f"Failed to prepare bucket '{self.bucket_name}': {e}") from e

    def _key(self, location: str) -> str:
        return f"{self.prefix}{location}"

    def _remove_quietly(self, location: str) -> None:
        try:
            self.client.remove_object(bucket_name=self.bucket_name, object_name=self._key(location))
        except S3Error as e:
            logger.error(f"Failed to remove partial object {location}: {e}")

    async def put(
        self,
        unique_id: str,
        extension: str,
        stream: AsyncIterator[bytes],
        limit: Optional[int] = None,
    ) -> StoredObject:
        location = self.location_for(unique_id, extension)
        written = 0

        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY) as spool:
            async for chunk in stream:
                if not chunk:
                    continue
                written += len(chunk)
                if limit is not None and written > limit:
                    raise PayloadTooLargeError(limit, written)
                try:
                    await asyncio.to_thread(spool.write, chunk)
                except OSError as e:
                    raise StorageError(f"Failed to buffer upload: {e}") from e

            spool.seek(0)
            try:
                await asyncio.to_thread(
                    self.client.put_object,
                    bucket_name=self.bucket_name,
                    object_name=self._key(location),
                    data=spool,
                    length=written,
                )
            except BaseException as e:
                self._remove_quietly(location)
                if isinstance(e, (S3Error, OSError)):
                    raise StorageError(f"Failed to upload object: {e}") from e
                raise

        logger.debug(f"Stored {location} ({written} bytes) in bucket '{self.bucket_name}'")
        return StoredObject(location=location, size=written)

    def open(self, location: str) -> BinaryIO:
        try:
            response = self.client.get_object(bucket_name=self.bucket_name, object_name=self._key(location))
        except S3Error as e:
            if e.code in _MISSING_CODES:
                raise ObjectNotFoundError() from e
            raise StorageError(f"Failed to open object {location}: {e}") from e
        return _MinioObjectReader(response)

    def delete(self, location: str) -> bool:
        if not self.exists(location):
            return False
        try:
            self.client.remove_object(bucket_name=self.bucket_name, object_name=self._key(location))
        except S3Error as e:
            raise StorageError(f"Failed to delete {location}: {e}") from e
        logger.debug(f"Deleted object: {location}")
        return True

    def exists(self, location: str) -> bool:
        try:
            self.client.stat_object(bucket_name=self.bucket_name, object_name=self._key(location))
            return True
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return False
            raise StorageError(f"Failed to stat object {location}: {e}") from e

    def iter_objects(self) -> Iterator[StoredBlob]:
        try:
            objects = self.client.list_objects(
                bucket_name=self.bucket_name,
                prefix=self.prefix,
                recursive=True,
            )
            for obj in objects:
                location = obj.object_name[len(self.prefix):]
                if not location or "/" in location:
                    continue
                yield StoredBlob(
                    location=location,
                    size=obj.size or 0,
                    modified_at=obj.last_modified,
                )
        except S3Error as e:
            raise StorageError(f"Failed to list objects: {e}") from e

    def check_health(self) -> bool:
        try:
            return self.client.bucket_exists(bucket_name=self.bucket_name)
        except S3Error as e:
            logger.error(f"MinIO health check failed: {e}")
            return False
