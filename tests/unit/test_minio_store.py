"""
Unit tests for the MinIO object store.
Tests oneshot/storage/minio_store.py against a mocked MinIO client.
"""
import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from oneshot.storage import PayloadTooLargeError, StorageError
from oneshot.storage.minio_store import MinioObjectStore

UNIQUE_ID = "0123456789abcdef0123456789abcdef"


@pytest.fixture
def minio_client():
    client = MagicMock()
    client.bucket_exists.return_value = True
    return client


@pytest.fixture
def minio_store(minio_client):
    return MinioObjectStore(minio_client, bucket_name="uploads", prefix="blobs")


@pytest.mark.unit
class TestMinioObjectStore:
    """Test MinioObjectStore."""

    def test_creates_missing_bucket(self):
        client = MagicMock()
        client.bucket_exists.return_value = False

        MinioObjectStore(client, bucket_name="fresh")

        client.make_bucket.assert_called_once_with(bucket_name="fresh")

    def test_put_uploads_exact_length(self, minio_store, minio_client, chunks):
        uploaded = {}

        def fake_put_object(bucket_name, object_name, data, length):
            uploaded.update(bucket=bucket_name, key=object_name, body=data.read(), length=length)

        minio_client.put_object.side_effect = fake_put_object

        stored = asyncio.run(minio_store.put(UNIQUE_ID, ".txt", chunks(b"a" * 100)))

        assert stored.location == f"{UNIQUE_ID}.txt"
        assert stored.size == 100
        assert uploaded == {
            "bucket": "uploads",
            "key": f"blobs/{UNIQUE_ID}.txt",
            "body": b"a" * 100,
            "length": 100,
        }

    def test_put_over_limit_never_uploads(self, minio_store, minio_client, chunks):
        with pytest.raises(PayloadTooLargeError):
            asyncio.run(minio_store.put(UNIQUE_ID, ".bin", chunks(b"x" * 200), limit=100))

        minio_client.put_object.assert_not_called()

    def test_failed_upload_is_removed(self, minio_store, minio_client, chunks):
        minio_client.put_object.side_effect = OSError("connection reset")

        with pytest.raises(StorageError):
            asyncio.run(minio_store.put(UNIQUE_ID, ".bin", chunks(b"data")))

        minio_client.remove_object.assert_called_once_with(
            bucket_name="uploads", object_name=f"blobs/{UNIQUE_ID}.bin"
        )

    def test_open_releases_connection(self, minio_store, minio_client):
        response = MagicMock()
        response.read.side_effect = [b"abc", b""]
        minio_client.get_object.return_value = response

        handle = minio_store.open(f"{UNIQUE_ID}.txt")
        assert handle.read(64) == b"abc"
        handle.close()

        response.close.assert_called_once()
        response.release_conn.assert_called_once()

    def test_iter_objects_strips_prefix(self, minio_store, minio_client):
        modified = datetime(2026, 1, 1, tzinfo=timezone.utc)
        minio_client.list_objects.return_value = [
            SimpleNamespace(object_name=f"blobs/{UNIQUE_ID}.txt", size=3, last_modified=modified),
            SimpleNamespace(object_name="blobs/nested/other.txt", size=1, last_modified=modified),
        ]

        blobs = list(minio_store.iter_objects())

        assert [b.location for b in blobs] == [f"{UNIQUE_ID}.txt"]
        assert blobs[0].size == 3
        assert blobs[0].modified_at == modified
