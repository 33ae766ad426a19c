"""
MinIO Client Module

Provides MinIO client configuration and initialization.
"""
from minio import Minio

from oneshot.core.config import Settings


def get_minio_client(settings: Settings) -> Minio:
    """
    Create and return a MinIO client instance.

    Args:
        settings: Application settings with the MINIO_* values

    Returns:
        Minio: Configured MinIO client
    """
    return Minio(
        f"{settings.MINIO_HOST}:{settings.MINIO_PORT}",
        access_key=settings.MINIO_ACCESS_KEY,
        secret_key=settings.MINIO_SECRET_KEY,
        secure=settings.MINIO_SECURE
    )
