"""
Object Store

Maps an identifier + extension to bytes on durable storage.

Blobs are written once under a unique key and never modified in place; they
are only ever deleted. Writes are streamed chunk by chunk and the exact number
of bytes written is measured. A failed write never leaves a partial blob
behind.
"""
import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Iterator, Optional

from oneshot.storage.exceptions import ObjectNotFoundError, PayloadTooLargeError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024


@dataclass
class StoredObject:
    """
    Result of a completed write
    """
    location: str
    size: int


@dataclass
class StoredBlob:
    """
    Blob listed by the store (used by the orphan sweep)
    """
    location: str
    size: int
    modified_at: datetime

    def age_seconds(self, now: datetime) -> float:
        return (now - self.modified_at).total_seconds()


class ObjectStore(ABC):
    """
    Abstract blob store keyed by storage location.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE

    def location_for(self, unique_id: str, extension: str) -> str:
        """Deterministic storage key for an identifier and extension."""
        return f"{unique_id}{extension}"

    @staticmethod
    def unique_id_from_location(location: str) -> str:
        """Recover the identifier from a storage key."""
        name = location.rsplit("/", 1)[-1]
        return name.split(".", 1)[0]

    @abstractmethod
    async def put(
        self,
        unique_id: str,
        extension: str,
        stream: AsyncIterator[bytes],
        limit: Optional[int] = None,
    ) -> StoredObject:
        """
        Stream bytes into a new blob.

        Args:
            unique_id: Object identifier
            extension: Extension including the leading dot
            stream: Async iterator of byte chunks
            limit: Abort with PayloadTooLargeError once more than this many
                bytes have been received

        Returns:
            StoredObject with the location and the measured size

        Raises:
            PayloadTooLargeError: If the limit was exceeded
            StorageError: If the write failed
        """

    @abstractmethod
    def open(self, location: str) -> BinaryIO:
        """
        Open a blob for reading.

        Raises:
            ObjectNotFoundError: If the blob does not exist
        """

    @abstractmethod
    def delete(self, location: str) -> bool:
        """
        Delete a blob. Idempotent.

        Returns:
            True if a blob was removed, False if it was already absent
        """

    @abstractmethod
    def exists(self, location: str) -> bool:
        """Check whether a blob exists."""

    @abstractmethod
    def iter_objects(self) -> Iterator[StoredBlob]:
        """Iterate over every blob in the store."""

    def check_health(self) -> bool:
        return True


class LocalObjectStore(ObjectStore):
    """
    Filesystem-backed object store.

    Every blob is a single file directly under ``base_path``.
    """

    def __init__(self, base_path: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize the local object store

        Args:
            base_path: Directory holding the blobs (created if missing)
            chunk_size: Read size used when streaming blobs back out
        """
        self.base_path = Path(base_path)
        self.chunk_size = chunk_size
        self._ensure_base_directory()

        logger.info(f"LocalObjectStore initialized at '{self.base_path}'")

    def _ensure_base_directory(self) -> None:
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create storage directory: {self.base_path}") from e

    def _path(self, location: str) -> Path:
        if not location or "/" in location or "\\" in location or location.startswith("."):
            raise ObjectNotFoundError()
        return self.base_path / location

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
            logger.info(f"Removed partial upload: {path.name}")
        except OSError as e:
            logger.error(f"Failed to remove partial upload {path.name}: {e}")

    async def put(
        self,
        unique_id: str,
        extension: str,
        stream: AsyncIterator[bytes],
        limit: Optional[int] = None,
    ) -> StoredObject:
        location = self.location_for(unique_id, extension)
        path = self._path(location)

        try:
            # Exclusive create: an existing blob is never overwritten.
            handle = await asyncio.to_thread(open, path, "xb")
        except OSError as e:
            raise StorageError(f"Failed to create file: {e}") from e

        written = 0
        try:
            try:
                async for chunk in stream:
                    if not chunk:
                        continue
                    written += len(chunk)
                    if limit is not None and written > limit:
                        raise PayloadTooLargeError(limit, written)
                    await asyncio.to_thread(handle.write, chunk)
                await asyncio.to_thread(handle.flush)
                await asyncio.to_thread(os.fsync, handle.fileno())
            finally:
                handle.close()
        except OSError as e:
            self._discard(path)
            raise StorageError(f"Failed to save file: {e}") from e
        except BaseException:
            # Client disconnects and task cancellation land here too.
            self._discard(path)
            raise

        size = path.stat().st_size
        logger.debug(f"Stored {location} ({size} bytes)")
        return StoredObject(location=location, size=size)

    def open(self, location: str) -> BinaryIO:
        path = self._path(location)
        try:
            return open(path, "rb")
        except FileNotFoundError as e:
            raise ObjectNotFoundError() from e
        except IsADirectoryError as e:
            raise ObjectNotFoundError() from e
        except OSError as e:
            raise StorageError(f"Failed to open file: {e}") from e

    def delete(self, location: str) -> bool:
        try:
            path = self._path(location)
        except ObjectNotFoundError:
            return False

        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {location}: {e}") from e

        logger.debug(f"Deleted blob: {location}")
        return True

    def exists(self, location: str) -> bool:
        try:
            return self._path(location).is_file()
        except ObjectNotFoundError:
            return False

    def iter_objects(self) -> Iterator[StoredBlob]:
        with os.scandir(self.base_path) as entries:
            for entry in entries:
                if not entry.is_file(follow_symlinks=False) or entry.name.startswith("."):
                    continue
                try:
                    stat = entry.stat(follow_symlinks=False)
                except FileNotFoundError:
                    continue
                yield StoredBlob(
                    location=entry.name,
                    size=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )

    def check_health(self) -> bool:
        return self.base_path.is_dir() and os.access(self.base_path, os.W_OK)
