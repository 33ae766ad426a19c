"""
Pydantic schemas for request/response validation.
"""
from oneshot.schemas.file import (
    MessageResponse,
    UploadResponse,
    FileInfo,
    FileInfoResponse,
    StatsResponse,
    HealthResponse,
)

__all__ = [
    "MessageResponse",
    "UploadResponse",
    "FileInfo",
    "FileInfoResponse",
    "StatsResponse",
    "HealthResponse",
]
