"""
Abstract base class for storage backends.

This module defines the interface that all storage backends must implement.
The HTTP layer only talks to StorageBackend, so the filesystem and the
S3-compatible implementations are interchangeable.
"""
from abc import ABC, abstractmethod
from typing import AsyncIterator

from sharebox.logging_config import setup_logging
from sharebox.storage.locks import ShareLocks
from sharebox.storage.models import Item, Options, Share
from sharebox.storage.quota import QuotaPlan, mb_to_bytes, plan_write

# Suffix of in-flight uploads and metadata rewrites
TEMP_SUFFIX = "_huploadtemp"

# Chunk size used when streaming item content
CHUNK_SIZE = 64 * 1024  # 64KB


class ItemData:
    """
    An opened item: its metadata and a stream over its content.

    item describes the same file or object the chunks are read from, so its
    size matches the bytes produced even if the item is replaced meanwhile.
    """

    def __init__(self, item: Item, chunks: AsyncIterator[bytes]):
        self.item = item
        self.chunks = chunks

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.chunks


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.

    All storage implementations must implement these methods. Every method
    that takes a share or item name validates it before performing any I/O
    and raises one of the sentinel errors from sharebox.storage.exceptions.
    """

    def __init__(self, max_file_mb: int = 0, max_share_mb: int = 0):
        """
        Initialize shared backend state.

        Args:
            max_file_mb: Maximum item size in MB, 0 for unlimited
            max_share_mb: Maximum share size in MB, 0 for unlimited
        """
        self.max_item_bytes = mb_to_bytes(max_file_mb)
        self.max_share_bytes = mb_to_bytes(max_share_mb)
        self.locks = ShareLocks()
        self.logger = setup_logging()

    async def plan_upload(self, share: str, item: str, size: int) -> QuotaPlan:
        """
        Admit an upload against the share's current aggregate size.

        Raises:
            ShareNotFoundError: If the share does not exist
            MaxShareSizeReachedError: If the share cannot take the upload
            MaxFileSizeReachedError: If the declared size is too large
        """
        current = await self.get_share(share)
        return plan_write(
            share=share,
            item=item,
            share_size=current.size,
            max_share_bytes=self.max_share_bytes,
            max_item_bytes=self.max_item_bytes,
            declared_size=size,
        )

    @abstractmethod
    async def migrate(self) -> None:
        """
        Prepare the backend and upgrade metadata written by older releases.

        Called once at startup. Must be idempotent.
        """
        pass

    @abstractmethod
    async def create_share(self, name: str, owner: str, options: Options) -> Share:
        """
        Create a new, empty share.

        Args:
            name: Share name
            owner: Name of the authenticated user creating the share
            options: Initial share options

        Returns:
            The created Share

        Raises:
            InvalidShareNameError: If name is not a safe share name
            ShareAlreadyExistsError: If a share with this name exists
        """
        pass

    @abstractmethod
    async def update_share(self, name: str, options: Options) -> Options:
        """
        Replace the options of a share.

        Name, owner, creation date and aggregates are preserved.

        Returns:
            The stored options

        Raises:
            InvalidShareNameError: If name is not a safe share name
            ShareNotFoundError: If the share does not exist
        """
        pass

    @abstractmethod
    async def create_item(
        self,
        share: str,
        item: str,
        size: int,
        stream: AsyncIterator[bytes],
    ) -> Item:
        """
        Stream a new item into a share.

        An existing item with the same name is replaced.

        Args:
            share: Share name
            item: Item name
            size: Size announced by the caller, 0 if unknown
            stream: Async iterator yielding item content

        Returns:
            The stored Item

        Raises:
            InvalidShareNameError / InvalidItemNameError: On unsafe names
            ShareNotFoundError: If the share does not exist
            MaxShareSizeReachedError: If the share capacity is exceeded
            MaxFileSizeReachedError: If the item size limit is exceeded
            EmptyItemError: If the stream produced no data
        """
        pass

    @abstractmethod
    async def delete_item(self, share: str, item: str) -> None:
        """
        Delete an item and refresh the share aggregates.

        Raises:
            InvalidShareNameError / InvalidItemNameError: On unsafe names
            ItemNotFoundError: If the item does not exist
        """
        pass

    @abstractmethod
    async def get_share(self, name: str) -> Share:
        """
        Raises:
            InvalidShareNameError: If name is not a safe share name
            ShareNotFoundError: If the share does not exist
        """
        pass

    @abstractmethod
    async def list_shares(self) -> list[Share]:
        """Return all shares, newest first."""
        pass

    @abstractmethod
    async def list_share(self, name: str) -> list[Item]:
        """
        Return the items of a share, most recently modified first.

        Raises:
            InvalidShareNameError: If name is not a safe share name
            ShareNotFoundError: If the share does not exist
        """
        pass

    @abstractmethod
    async def delete_share(self, name: str) -> None:
        """
        Delete a share with all its items.

        Raises:
            InvalidShareNameError: If name is not a safe share name
            ShareNotFoundError: If the share does not exist
        """
        pass

    @abstractmethod
    async def get_item(self, share: str, item: str) -> Item:
        """
        Raises:
            InvalidShareNameError / InvalidItemNameError: On unsafe names
            ItemNotFoundError: If the item does not exist
        """
        pass

    @abstractmethod
    async def get_item_data(self, share: str, item: str) -> ItemData:
        """
        Open an item for reading.

        The item is opened before this coroutine returns, so a missing item
        raises here rather than while iterating.

        Returns:
            ItemData whose item size and date describe the opened content,
            iterable in chunks

        Raises:
            InvalidShareNameError / InvalidItemNameError: On unsafe names
            ItemNotFoundError: If the item does not exist
        """
        pass
