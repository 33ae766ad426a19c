"""
Storage Module

File lifecycle core:
- Object stores for the uploaded bytes (local filesystem, MinIO)
- Metadata ledger for the records describing them
- Lifecycle engine enforcing size, download and expiry limits
- Background reclaimer reconciling the two
"""

from .exceptions import (
    LifecycleError,
    PayloadTooLargeError,
    ObjectNotFoundError,
    ObjectGoneError,
    StorageError,
    MetadataPersistError,
    DuplicateIDError,
)
from .object_store import ObjectStore, LocalObjectStore, StoredObject, StoredBlob
from .ledger import MetadataLedger, LedgerStats
from .lifecycle import LifecycleEngine, LifecyclePolicy, Retrieval, EvictionReason
from .cleanup import StorageReclaimer, ReclaimResult
from .factory import create_object_store

__all__ = [
    # Errors
    'LifecycleError',
    'PayloadTooLargeError',
    'ObjectNotFoundError',
    'ObjectGoneError',
    'StorageError',
    'MetadataPersistError',
    'DuplicateIDError',

    # Object stores
    'ObjectStore',
    'LocalObjectStore',
    'StoredObject',
    'StoredBlob',
    'create_object_store',

    # Ledger
    'MetadataLedger',
    'LedgerStats',

    # Lifecycle
    'LifecycleEngine',
    'LifecyclePolicy',
    'Retrieval',
    'EvictionReason',

    # Reclaimer
    'StorageReclaimer',
    'ReclaimResult',
]
