"""
Storage dependency injection for FastAPI.

The backend is built once at application startup by build_storage() and kept
on app.state; endpoints receive it through the get_storage() dependency.
"""
from fastapi import Request

from sharebox.config import Settings
from sharebox.storage.base import StorageBackend
from sharebox.storage.local import LocalStorageBackend
from sharebox.storage.s3 import S3StorageBackend


def build_storage(settings: Settings) -> StorageBackend:
    """
    Return storage backend based on configuration.

    This allows switching between local and S3-compatible storage
    by changing the STORAGE_BACKEND environment variable.

    Returns:
        StorageBackend instance (file or s3)

    Raises:
        ValueError: If STORAGE_BACKEND is not supported or incomplete
    """
    if settings.STORAGE_BACKEND == "file":
        return LocalStorageBackend(
            base_path=settings.STORAGE_BASE_PATH,
            max_file_mb=settings.MAX_FILE_MB,
            max_share_mb=settings.MAX_SHARE_MB,
        )

    if settings.STORAGE_BACKEND == "s3":
        if not settings.S3_BUCKET:
            raise ValueError("S3_BUCKET is required for the s3 storage backend")
        return S3StorageBackend(
            bucket_name=settings.S3_BUCKET,
            region=settings.S3_REGION,
            endpoint_url=settings.S3_ENDPOINT_URL,
            aws_access_key=settings.AWS_ACCESS_KEY_ID,
            aws_secret_key=settings.AWS_SECRET_ACCESS_KEY,
            max_file_mb=settings.MAX_FILE_MB,
            max_share_mb=settings.MAX_SHARE_MB,
            spool_max_mb=settings.S3_SPOOL_MAX_MB,
        )

    raise ValueError(f"Unknown storage backend: {settings.STORAGE_BACKEND}")


def get_storage(request: Request) -> StorageBackend:
    """Return the backend built at startup."""
    return request.app.state.storage
