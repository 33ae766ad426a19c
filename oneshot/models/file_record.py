"""
SQLAlchemy model for uploaded files.
Represents the file_records table (the metadata ledger).
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    BigInteger,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to aware UTC (SQLite returns naive values)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class FileRecord(Base):
    """
    Uploaded file model.
    Maps to the 'file_records' table.
    """
    __tablename__ = "file_records"

    # Primary Key
    id = Column(Integer, primary_key=True, autoincrement=True)

    # Public identifier (32 hex chars)
    unique_id = Column(String(32), unique=True, nullable=False, index=True)

    # Client supplied information (advisory)
    original_name = Column(String(512), nullable=False)
    mime_type = Column(String(255), nullable=True)
    extension = Column(String(32), nullable=False)
    ip_address = Column(String(64), nullable=True)

    # Storage
    storage_location = Column(String(1024), nullable=False)
    file_size = Column(BigInteger, nullable=False)

    # Lifecycle
    downloads = Column(Integer, default=0, nullable=False)
    uploaded_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<FileRecord(unique_id={self.unique_id}, size={self.file_size}, downloads={self.downloads})>"

    def is_expired(self, now: datetime) -> bool:
        """Expired once now reaches expires_at."""
        return now >= as_utc(self.expires_at)

    def is_exhausted(self, max_downloads: int) -> bool:
        """Check if every permitted download has been used."""
        return self.downloads >= max_downloads

    @property
    def download_name(self) -> str:
        """Public file name used in download links."""
        return f"{self.unique_id}{self.extension}"
