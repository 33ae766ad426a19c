"""
Unit tests for the metadata ledger.
Tests oneshot/storage/ledger.py
"""
from datetime import datetime, timedelta, timezone

import pytest

from oneshot.core.identifiers import generate_unique_id
from oneshot.models import FileRecord, as_utc
from oneshot.storage import DuplicateIDError, ObjectNotFoundError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_record(unique_id=None, size=10, downloads=0, expires_in=timedelta(hours=1)):
    unique_id = unique_id or generate_unique_id()
    return FileRecord(
        unique_id=unique_id,
        original_name="report.pdf",
        storage_location=f"{unique_id}.pdf",
        file_size=size,
        mime_type="application/pdf",
        extension=".pdf",
        downloads=downloads,
        uploaded_at=NOW,
        expires_at=NOW + expires_in,
        ip_address="127.0.0.1",
    )


@pytest.mark.unit
class TestInsertFind:
    """Test insert and find_by_id."""

    def test_insert_and_find(self, ledger):
        record = ledger.insert(make_record())
        found = ledger.find_by_id(record.unique_id)

        assert found.id is not None
        assert found.original_name == "report.pdf"
        assert found.file_size == 10
        assert found.downloads == 0
        assert as_utc(found.expires_at) == NOW + timedelta(hours=1)

    def test_find_missing(self, ledger):
        with pytest.raises(ObjectNotFoundError):
            ledger.find_by_id(generate_unique_id())

    def test_duplicate_id(self, ledger):
        unique_id = generate_unique_id()
        ledger.insert(make_record(unique_id))

        with pytest.raises(DuplicateIDError) as exc_info:
            ledger.insert(make_record(unique_id))
        assert exc_info.value.unique_id == unique_id


@pytest.mark.unit
class TestIncrementDownload:
    """Test the conditional download claim."""

    def test_counts_up_to_limit(self, ledger):
        record = ledger.insert(make_record())

        assert ledger.increment_download(record.unique_id, 3, NOW) == 1
        assert ledger.increment_download(record.unique_id, 3, NOW) == 2
        assert ledger.increment_download(record.unique_id, 3, NOW) == 3
        assert ledger.increment_download(record.unique_id, 3, NOW) is None
        assert ledger.find_by_id(record.unique_id).downloads == 3

    def test_refuses_expired(self, ledger):
        record = ledger.insert(make_record(expires_in=timedelta(minutes=5)))
        later = NOW + timedelta(minutes=5)

        assert ledger.increment_download(record.unique_id, 1, later) is None
        assert ledger.find_by_id(record.unique_id).downloads == 0

    def test_missing_record(self, ledger):
        assert ledger.increment_download(generate_unique_id(), 1, NOW) is None


@pytest.mark.unit
class TestDeleteAndQueries:
    """Test delete, sweep queries and aggregates."""

    def test_delete(self, ledger):
        record = ledger.insert(make_record())
        assert ledger.delete(record.unique_id) is True
        assert ledger.delete(record.unique_id) is False

        with pytest.raises(ObjectNotFoundError):
            ledger.find_by_id(record.unique_id)

    def test_find_expired_or_exhausted(self, ledger):
        live = ledger.insert(make_record())
        expired = ledger.insert(make_record(expires_in=timedelta(seconds=-1)))
        exhausted = ledger.insert(make_record(downloads=1))

        due = ledger.find_expired_or_exhausted(NOW, max_downloads=1)

        assert [r.unique_id for r in due] == [expired.unique_id, exhausted.unique_id]
        assert live.unique_id not in {r.unique_id for r in due}

    def test_find_expired_limit_and_exclude(self, ledger):
        records = [ledger.insert(make_record(downloads=5)) for _ in range(3)]

        first = ledger.find_expired_or_exhausted(NOW, 1, limit=2)
        assert [r.unique_id for r in first] == [r.unique_id for r in records[:2]]

        rest = ledger.find_expired_or_exhausted(NOW, 1, exclude_ids=[records[0].unique_id])
        assert [r.unique_id for r in rest] == [r.unique_id for r in records[1:]]

    def test_existing_ids(self, ledger):
        kept = ledger.insert(make_record())
        unknown = generate_unique_id()

        assert ledger.existing_ids([kept.unique_id, unknown, kept.unique_id]) == {kept.unique_id}
        assert ledger.existing_ids([]) == set()

    def test_aggregate_stats(self, ledger):
        empty = ledger.aggregate_stats()
        assert (empty.total_files, empty.total_size) == (0, 0)

        for size in (10, 20, 30):
            ledger.insert(make_record(size=size))

        stats = ledger.aggregate_stats()
        assert stats.total_files == 3
        assert stats.total_size == 60
