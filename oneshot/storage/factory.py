"""
Object store selection from settings.
"""
import logging

from oneshot.storage.object_store import LocalObjectStore, ObjectStore

logger = logging.getLogger(__name__)


def create_object_store(settings) -> ObjectStore:
    """
    Build the object store named by STORAGE_BACKEND.

    Args:
        settings: Application settings

    Returns:
        LocalObjectStore for "local", MinioObjectStore for "minio"
    """
    backend = settings.STORAGE_BACKEND

    if backend == "minio":
        from oneshot.core.minio_client import get_minio_client
        from oneshot.storage.minio_store import MinioObjectStore

        logger.info(
            f"Using MinIO object store ({settings.MINIO_HOST}:{settings.MINIO_PORT}, "
            f"bucket={settings.MINIO_BUCKET})"
        )
        return MinioObjectStore(
            get_minio_client(settings),
            bucket_name=settings.MINIO_BUCKET,
            prefix=settings.MINIO_PREFIX,
        )

    if backend == "local":
        logger.info(f"Using local object store ({settings.UPLOAD_DIR})")
        return LocalObjectStore(settings.UPLOAD_DIR)

    raise ValueError(f"Unknown storage backend: {backend}")
