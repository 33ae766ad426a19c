"""
SQLAlchemy models for the file sharing service.
"""
from oneshot.models.file_record import FileRecord, Base, as_utc

__all__ = ["FileRecord", "Base", "as_utc"]
