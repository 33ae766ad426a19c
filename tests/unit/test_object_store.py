"""
Unit tests for the local object store.
Tests oneshot/storage/object_store.py
"""
import asyncio
import os
from datetime import datetime, timezone

import pytest

from oneshot.storage import (
    LocalObjectStore,
    ObjectNotFoundError,
    PayloadTooLargeError,
    StorageError,
)

UNIQUE_ID = "0123456789abcdef0123456789abcdef"


class ClientGone(Exception):
    pass


async def failing_stream(data: bytes):
    yield data
    raise ClientGone("client went away")


@pytest.mark.unit
class TestPut:
    """Test LocalObjectStore.put."""

    def test_round_trip(self, store, chunks):
        data = os.urandom(1000)
        stored = asyncio.run(store.put(UNIQUE_ID, ".bin", chunks(data)))

        assert stored.location == f"{UNIQUE_ID}.bin"
        assert stored.size == 1000
        with store.open(stored.location) as handle:
            assert handle.read() == data

    def test_empty_body(self, store, chunks):
        stored = asyncio.run(store.put(UNIQUE_ID, ".txt", chunks(b"")))
        assert stored.size == 0
        assert store.exists(stored.location)

    def test_never_overwrites_existing_blob(self, store, chunks):
        asyncio.run(store.put(UNIQUE_ID, ".txt", chunks(b"first")))

        with pytest.raises(StorageError):
            asyncio.run(store.put(UNIQUE_ID, ".txt", chunks(b"second")))

        with store.open(f"{UNIQUE_ID}.txt") as handle:
            assert handle.read() == b"first"

    def test_limit_exceeded_removes_partial_blob(self, store, chunks):
        with pytest.raises(PayloadTooLargeError) as exc_info:
            asyncio.run(store.put(UNIQUE_ID, ".bin", chunks(b"x" * 200), limit=100))

        assert exc_info.value.limit_bytes == 100
        assert not store.exists(f"{UNIQUE_ID}.bin")
        assert list(store.iter_objects()) == []

    def test_limit_is_inclusive(self, store, chunks):
        stored = asyncio.run(store.put(UNIQUE_ID, ".bin", chunks(b"x" * 100), limit=100))
        assert stored.size == 100

    def test_stream_failure_removes_partial_blob(self, store):
        with pytest.raises(ClientGone):
            asyncio.run(store.put(UNIQUE_ID, ".bin", failing_stream(b"partial")))

        assert not store.exists(f"{UNIQUE_ID}.bin")


@pytest.mark.unit
class TestReadDelete:
    """Test open, delete, exists and iter_objects."""

    def test_open_missing(self, store):
        with pytest.raises(ObjectNotFoundError):
            store.open(f"{UNIQUE_ID}.bin")

    @pytest.mark.parametrize("location", ["../secret", "a/b", "..\\x", ".hidden", ""])
    def test_rejects_locations_outside_the_store(self, store, location):
        with pytest.raises(ObjectNotFoundError):
            store.open(location)
        assert store.delete(location) is False
        assert store.exists(location) is False

    def test_delete_is_idempotent(self, store, chunks):
        stored = asyncio.run(store.put(UNIQUE_ID, ".bin", chunks(b"data")))

        assert store.delete(stored.location) is True
        assert store.delete(stored.location) is False
        assert not store.exists(stored.location)

    def test_iter_objects(self, store, chunks):
        asyncio.run(store.put(UNIQUE_ID, ".txt", chunks(b"abc")))
        blobs = list(store.iter_objects())

        assert len(blobs) == 1
        blob = blobs[0]
        assert blob.location == f"{UNIQUE_ID}.txt"
        assert blob.size == 3
        assert blob.modified_at.tzinfo is not None
        assert blob.age_seconds(datetime.now(timezone.utc)) >= -1

    def test_unique_id_from_location(self, store):
        assert store.unique_id_from_location(f"{UNIQUE_ID}.tar") == UNIQUE_ID
        assert store.unique_id_from_location(UNIQUE_ID) == UNIQUE_ID

    def test_base_directory_created(self, tmp_path):
        base = tmp_path / "nested" / "uploads"
        store = LocalObjectStore(str(base))
        assert base.is_dir()
        assert store.check_health()
