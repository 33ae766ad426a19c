"""
File Lifecycle Engine

Enforces the lifecycle of every uploaded object:

    Uploading -> Available -> {Downloaded-and-removed | Expired-and-removed}

- Admission: size limit (declared and measured), bytes written before the
  ledger record is committed, bytes rolled back if the commit fails
- Retrieval: lazy eviction of expired/exhausted objects, atomic download
  claims, cleanup of records whose bytes are missing
- Eviction: one shared primitive used by lazy cleanup and the reclaimer
"""
import asyncio
import enum
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, BinaryIO, Callable, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError

from oneshot.core.identifiers import generate_unique_id, is_valid_unique_id
from oneshot.metrics import (
    record_download,
    record_download_denied,
    record_eviction,
    record_upload,
    record_upload_rejected,
)
from oneshot.models.file_record import FileRecord
from oneshot.storage.exceptions import (
    DuplicateIDError,
    MetadataPersistError,
    ObjectGoneError,
    ObjectNotFoundError,
    PayloadTooLargeError,
)
from oneshot.storage.ledger import LedgerStats, MetadataLedger
from oneshot.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "upload.bin"
DEFAULT_EXTENSION = ".bin"

_EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]{1,16}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EvictionReason(str, enum.Enum):
    """Why an object was removed."""
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    MISSING_BYTES = "missing_bytes"


@dataclass(frozen=True)
class LifecyclePolicy:
    """
    Admission and eviction policy
    """
    max_upload_bytes: int
    max_downloads: int
    ttl: timedelta


@dataclass
class Retrieval:
    """
    A claimed download: the record plus an open handle on its bytes.

    The download has already been counted; the caller only streams.
    """
    record: FileRecord
    body: BinaryIO
    download_number: int
    chunk_size: int

    def iter_chunks(self) -> Iterator[bytes]:
        """Yield the body in chunks and close the handle afterwards."""
        try:
            while True:
                chunk = self.body.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.body.close()

    def close(self) -> None:
        self.body.close()


def sanitize_filename(filename: Optional[str]) -> str:
    """Strip path components from a client supplied file name."""
    if not filename:
        return DEFAULT_FILENAME
    name = filename.replace("\\", "/").rsplit("/", 1)[-1].strip()
    name = "".join(ch for ch in name if ch.isprintable() and ch != '"')
    return name or DEFAULT_FILENAME


def extension_for(filename: str) -> str:
    """
    Storage extension for a file name.

    Only short alphanumeric extensions are kept; anything else becomes ".bin".
    """
    ext = os.path.splitext(filename)[1]
    if not _EXTENSION_RE.match(ext):
        return DEFAULT_EXTENSION
    return ext


class LifecycleEngine:
    """
    Core file lifecycle engine

    Owns the consistency between the object store and the metadata ledger.
    """

    def __init__(
        self,
        store: ObjectStore,
        ledger: MetadataLedger,
        policy: LifecyclePolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the lifecycle engine

        Args:
            store: Object store holding the bytes
            ledger: Metadata ledger holding the records
            policy: Size, download and expiry limits
            clock: Source of the current (aware, UTC) time
        """
        self.store = store
        self.ledger = ledger
        self.policy = policy
        self.clock = clock

        logger.info(
            f"LifecycleEngine initialized (max_upload_bytes={policy.max_upload_bytes}, "
            f"max_downloads={policy.max_downloads}, ttl={policy.ttl})"
        )

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def check_declared_size(self, declared_size: Optional[int]) -> None:
        """
        Reject an upload whose declared size is already over the limit.

        Raises:
            PayloadTooLargeError: If declared_size exceeds the limit
        """
        if declared_size is not None and declared_size > self.policy.max_upload_bytes:
            record_upload_rejected("declared_size")
            raise PayloadTooLargeError(self.policy.max_upload_bytes, declared_size)

    async def admit(
        self,
        stream: AsyncIterator[bytes],
        original_name: Optional[str],
        mime_type: Optional[str] = None,
        declared_size: Optional[int] = None,
        owner_address: Optional[str] = None,
    ) -> FileRecord:
        """
        Store a new upload and commit its ledger record.

        Args:
            stream: Async iterator over the upload body
            original_name: Client supplied file name
            mime_type: Client supplied MIME type
            declared_size: Client declared length (e.g. Content-Length)
            owner_address: Client network address

        Returns:
            The committed FileRecord

        Raises:
            PayloadTooLargeError: Declared or measured size over the limit
            StorageError: Writing the bytes failed
            MetadataPersistError: The ledger commit failed (bytes rolled back)
        """
        self.check_declared_size(declared_size)

        limit = self.policy.max_upload_bytes
        name = sanitize_filename(original_name)
        extension = extension_for(name)
        unique_id = generate_unique_id()

        try:
            stored = await self.store.put(unique_id, extension, stream, limit=limit)
        except PayloadTooLargeError:
            record_upload_rejected("measured_size")
            raise

        if stored.size > limit:
            await asyncio.to_thread(self.store.delete, stored.location)
            record_upload_rejected("measured_size")
            raise PayloadTooLargeError(limit, stored.size)

        now = self.clock()
        record = FileRecord(
            unique_id=unique_id,
            original_name=name,
            storage_location=stored.location,
            file_size=stored.size,
            mime_type=mime_type or None,
            extension=extension,
            ip_address=owner_address,
            downloads=0,
            uploaded_at=now,
            expires_at=now + self.policy.ttl,
        )

        try:
            await asyncio.to_thread(self.ledger.insert, record)
        except (DuplicateIDError, SQLAlchemyError) as e:
            logger.error(f"Failed to commit ledger record for {unique_id}, rolling back bytes: {e}")
            await asyncio.to_thread(self.store.delete, stored.location)
            record_upload_rejected("metadata")
            raise MetadataPersistError() from e

        record_upload(stored.size)
        logger.info(
            f"Admitted upload {unique_id} ({stored.size} bytes, "
            f"name={name!r}, expires_at={record.expires_at.isoformat()})"
        )
        return record

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def eviction_reason(self, record: FileRecord, now: Optional[datetime] = None) -> Optional[EvictionReason]:
        """Return why a record is due for eviction, or None if it is servable."""
        now = now or self.clock()
        if record.is_expired(now):
            return EvictionReason.EXPIRED
        if record.is_exhausted(self.policy.max_downloads):
            return EvictionReason.EXHAUSTED
        return None

    def evict(self, record: FileRecord, reason: EvictionReason, trigger: str) -> bool:
        """
        Remove an object's bytes, then its ledger record.

        Missing bytes are not an error. A failure deleting the bytes leaves the
        record in place so the next sweep retries.

        Args:
            record: Record to evict
            reason: Why it is being evicted
            trigger: "access" for lazy cleanup, "sweep" for the reclaimer

        Returns:
            True if this call removed the ledger record

        Raises:
            StorageError: If the bytes could not be deleted
        """
        bytes_removed = self.store.delete(record.storage_location)
        removed = self.ledger.delete(record.unique_id)

        if removed:
            record_eviction(reason.value, trigger)
            logger.info(
                f"Evicted {record.unique_id} ({reason.value}, trigger={trigger}, "
                f"bytes_removed={bytes_removed})"
            )
        return removed

    def evict_if_due(self, record: FileRecord, trigger: str, now: Optional[datetime] = None) -> Optional[EvictionReason]:
        """Evict the record if it is expired or exhausted; return the reason."""
        reason = self.eviction_reason(record, now)
        if reason is not None:
            self.evict(record, reason, trigger)
        return reason

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def retrieve(self, unique_id: str) -> Retrieval:
        """
        Claim a download and open the object's bytes.

        The download counter is incremented before any byte is streamed, so a
        client that disconnects mid-download still uses up its download.

        Raises:
            ObjectNotFoundError: Unknown id, or the bytes are missing
            ObjectGoneError: Expired or out of downloads
        """
        if not is_valid_unique_id(unique_id):
            record_download_denied("not_found")
            raise ObjectNotFoundError()

        try:
            record = self.ledger.find_by_id(unique_id)
        except ObjectNotFoundError:
            record_download_denied("not_found")
            raise

        now = self.clock()
        if self.evict_if_due(record, trigger="access", now=now) is not None:
            record_download_denied("gone")
            raise ObjectGoneError()

        try:
            body = self.store.open(record.storage_location)
        except ObjectNotFoundError:
            logger.warning(f"Ledger record {unique_id} has no stored bytes, removing record")
            if self.ledger.delete(unique_id):
                record_eviction(EvictionReason.MISSING_BYTES.value, "access")
            record_download_denied("not_found")
            raise

        download_number = self.ledger.increment_download(unique_id, self.policy.max_downloads, now)
        if download_number is None:
            body.close()
            # Lost a race against another download or the reclaimer.
            try:
                self.ledger.find_by_id(unique_id)
            except ObjectNotFoundError:
                record_download_denied("not_found")
                raise
            record_download_denied("gone")
            raise ObjectGoneError()

        record.downloads = download_number
        record_download(record.file_size)
        logger.info(
            f"Download {download_number}/{self.policy.max_downloads} started for {unique_id}"
        )
        return Retrieval(
            record=record,
            body=body,
            download_number=download_number,
            chunk_size=self.store.chunk_size,
        )

    # ------------------------------------------------------------------
    # Read-only operations
    # ------------------------------------------------------------------

    def describe(self, unique_id: str) -> FileRecord:
        """
        Read a record without side effects.

        Raises:
            ObjectNotFoundError: Unknown id
        """
        if not is_valid_unique_id(unique_id):
            raise ObjectNotFoundError()
        return self.ledger.find_by_id(unique_id)

    def stats(self) -> LedgerStats:
        """Aggregate count and size of stored objects."""
        return self.ledger.aggregate_stats()
