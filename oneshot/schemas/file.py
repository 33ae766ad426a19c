"""
Pydantic schemas for file-related requests and responses.
Provides validation and serialization for API endpoints.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageResponse(BaseModel):
    """Envelope for errors and plain messages."""
    success: bool
    message: str


# ========================================
# Response Schemas
# ========================================

class UploadResponse(BaseModel):
    """Response after a successful upload."""
    success: bool = True
    message: str = "File uploaded successfully"
    unique_id: str = Field(..., description="Object identifier")
    download_url: str = Field(..., description="One-shot download link")
    file_size: int = Field(..., ge=0, description="Stored size in bytes")
    expires_at: datetime = Field(..., description="Time after which the link is gone")


class FileInfo(BaseModel):
    """Ledger record as exposed by the describe endpoint."""
    id: int
    unique_id: str
    original_name: str
    file_size: int
    mime_type: Optional[str] = None
    extension: Optional[str] = None
    uploaded_at: datetime
    expires_at: datetime
    downloads: int

    model_config = ConfigDict(from_attributes=True)


class FileInfoResponse(BaseModel):
    """Envelope for FileInfo."""
    success: bool = True
    data: FileInfo


class StatsResponse(BaseModel):
    """Aggregate storage statistics."""
    success: bool = True
    total_files: int = Field(..., ge=0)
    total_size: int = Field(..., ge=0)
    total_size_formatted: str


class HealthResponse(BaseModel):
    """Health check result."""
    status: str
    service: str
    version: str
    database: str
    storage: str
