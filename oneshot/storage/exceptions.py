"""
Typed failures raised by the object store, the ledger and the lifecycle engine.

Each error carries the HTTP status it maps to and a message that is safe to
show to clients.
"""
from typing import Optional

from oneshot.core.units import format_bytes


class LifecycleError(Exception):
    """Base class for file lifecycle failures."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class PayloadTooLargeError(LifecycleError):
    """Declared or measured upload size exceeds the configured limit."""

    status_code = 413
    default_message = "File too large"

    def __init__(self, limit_bytes: int, size_bytes: Optional[int] = None, message: Optional[str] = None):
        self.limit_bytes = limit_bytes
        self.size_bytes = size_bytes
        super().__init__(message or f"File too large. Maximum size is {format_bytes(limit_bytes)}")


class ObjectNotFoundError(LifecycleError):
    """Unknown identifier, or the stored bytes are missing."""

    status_code = 404
    default_message = "File not found"


class ObjectGoneError(LifecycleError):
    """Known identifier that expired or used up its downloads."""

    status_code = 410
    default_message = "File has expired or has already been downloaded"


class StorageError(LifecycleError):
    """I/O failure in the object store."""

    default_message = "Failed to save file"


class MetadataPersistError(LifecycleError):
    """The ledger record could not be committed."""

    default_message = "Failed to save file metadata"


class DuplicateIDError(LifecycleError):
    """A ledger record with the same identifier already exists."""

    default_message = "Duplicate file identifier"

    def __init__(self, unique_id: str):
        self.unique_id = unique_id
        super().__init__(f"Duplicate file identifier: {unique_id}")
