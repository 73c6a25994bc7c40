"""
Storage abstraction layer for shares and items.

This package provides one async interface over two backends: a local
filesystem tree and an S3-compatible object store.
"""

from sharebox.storage.base import StorageBackend
from sharebox.storage.local import LocalStorageBackend
from sharebox.storage.s3 import S3StorageBackend
from sharebox.storage.exceptions import (
    EmptyItemError,
    InvalidItemNameError,
    InvalidShareNameError,
    ItemNotFoundError,
    MaxFileSizeReachedError,
    MaxShareSizeReachedError,
    ShareAlreadyExistsError,
    ShareNotFoundError,
    StorageError,
)
from sharebox.storage.models import (
    Exposure,
    Item,
    ItemInfo,
    Options,
    PublicShare,
    Share,
    public_share,
    public_shares,
)

__all__ = [
    "StorageBackend",
    "LocalStorageBackend",
    "S3StorageBackend",
    "StorageError",
    "InvalidShareNameError",
    "ShareNotFoundError",
    "ShareAlreadyExistsError",
    "MaxShareSizeReachedError",
    "MaxFileSizeReachedError",
    "InvalidItemNameError",
    "ItemNotFoundError",
    "EmptyItemError",
    "Exposure",
    "Options",
    "Share",
    "PublicShare",
    "Item",
    "ItemInfo",
    "public_share",
    "public_shares",
]
