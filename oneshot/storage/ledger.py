"""
Metadata Ledger

Durable record of every stored object, kept in the file_records table.

Every call opens its own session and commits before returning. Per-record
mutations are single conditional statements, so they are atomic with respect
to concurrent requests and the background reclaimer.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Set

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from oneshot.models.file_record import FileRecord
from oneshot.storage.exceptions import DuplicateIDError, ObjectNotFoundError

logger = logging.getLogger(__name__)

# Keeps IN (...) lists well under SQLite's bound-parameter limit.
_ID_LOOKUP_CHUNK = 500


@dataclass
class LedgerStats:
    """
    Aggregate ledger statistics
    """
    total_files: int
    total_size: int


class MetadataLedger:
    """
    SQLAlchemy-backed metadata ledger
    """

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize the ledger

        Args:
            session_factory: Session factory with expire_on_commit disabled
        """
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Ledger session error: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    def insert(self, record: FileRecord) -> FileRecord:
        """
        Insert a new record.

        Raises:
            DuplicateIDError: If the unique_id already exists
        """
        try:
            with self._session() as session:
                session.add(record)
                session.flush()
                session.refresh(record)
        except IntegrityError as e:
            raise DuplicateIDError(record.unique_id) from e

        logger.debug(f"Ledger insert: {record.unique_id}")
        return record

    def find_by_id(self, unique_id: str) -> FileRecord:
        """
        Look up a record by its identifier.

        Raises:
            ObjectNotFoundError: If no record exists
        """
        with self._session() as session:
            record = session.scalars(
                select(FileRecord).where(FileRecord.unique_id == unique_id)
            ).first()

        if record is None:
            raise ObjectNotFoundError()
        return record

    def increment_download(self, unique_id: str, max_downloads: int, now: datetime) -> Optional[int]:
        """
        Atomically claim one download.

        The counter is only incremented while the record is unexpired and
        below max_downloads, in one UPDATE statement.

        Returns:
            The new download count, or None if the record is missing, expired
            or exhausted
        """
        with self._session() as session:
            result = session.execute(
                update(FileRecord)
                .where(
                    FileRecord.unique_id == unique_id,
                    FileRecord.downloads < max_downloads,
                    FileRecord.expires_at > now,
                )
                .values(downloads=FileRecord.downloads + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None

            return session.scalar(
                select(FileRecord.downloads).where(FileRecord.unique_id == unique_id)
            )

    def delete(self, unique_id: str) -> bool:
        """
        Delete a record.

        Returns:
            True if a record was deleted, False if none existed
        """
        with self._session() as session:
            result = session.execute(
                delete(FileRecord)
                .where(FileRecord.unique_id == unique_id)
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount > 0

        if deleted:
            logger.debug(f"Ledger delete: {unique_id}")
        return deleted

    def find_expired_or_exhausted(
        self,
        now: datetime,
        max_downloads: int,
        limit: Optional[int] = None,
        exclude_ids: Optional[Iterable[str]] = None,
    ) -> List[FileRecord]:
        """
        Find records that are due for eviction.

        Args:
            now: Reference time
            max_downloads: Download limit
            limit: Maximum number of records to return
            exclude_ids: Identifiers to skip (records that already failed in
                the current sweep)

        Returns:
            Records with expires_at <= now or downloads >= max_downloads,
            oldest first
        """
        query = (
            select(FileRecord)
            .where(or_(FileRecord.expires_at <= now, FileRecord.downloads >= max_downloads))
            .order_by(FileRecord.id)
        )
        excluded = list(exclude_ids or [])
        if excluded:
            query = query.where(FileRecord.unique_id.not_in(excluded))
        if limit is not None:
            query = query.limit(limit)

        with self._session() as session:
            return list(session.scalars(query).all())

    def existing_ids(self, unique_ids: Iterable[str]) -> Set[str]:
        """Return the subset of identifiers that have a ledger record."""
        ids = list(dict.fromkeys(unique_ids))
        found: Set[str] = set()

        with self._session() as session:
            for start in range(0, len(ids), _ID_LOOKUP_CHUNK):
                chunk = ids[start:start + _ID_LOOKUP_CHUNK]
                found.update(
                    session.scalars(
                        select(FileRecord.unique_id).where(FileRecord.unique_id.in_(chunk))
                    ).all()
                )
        return found

    def aggregate_stats(self) -> LedgerStats:
        """Count records and sum their sizes."""
        with self._session() as session:
            count, total = session.execute(
                select(func.count(FileRecord.id), func.coalesce(func.sum(FileRecord.file_size), 0))
            ).one()

        return LedgerStats(total_files=int(count), total_size=int(total))
