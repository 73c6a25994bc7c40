"""
Storage-specific exceptions.

Every backend raises one of these sentinel errors for validation, lookup and
quota failures. I/O errors from the filesystem or the object store are not
wrapped and propagate as-is.
"""


class StorageError(Exception):
    """Base exception for storage operations."""

    pass


class InvalidShareNameError(StorageError):
    """Raised when a share name contains characters outside [A-Za-z0-9_-]."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Invalid share name: {name!r}")


class ShareNotFoundError(StorageError):
    """Raised when the requested share does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Share not found: {name}")


class ShareAlreadyExistsError(StorageError):
    """Raised when creating a share whose name is already taken."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Share already exists: {name}")


class MaxShareSizeReachedError(StorageError):
    """Raised when an upload does not fit in the remaining share capacity."""

    def __init__(self, share: str, max_size: int):
        self.share = share
        self.max_size = max_size
        super().__init__(
            f"Share {share} has reached its maximum size ({max_size} bytes)"
        )


class MaxFileSizeReachedError(StorageError):
    """Raised when an uploaded item exceeds the maximum item size."""

    def __init__(self, item: str, max_size: int):
        self.item = item
        self.max_size = max_size
        super().__init__(
            f"Item {item} exceeds maximum allowed size ({max_size} bytes)"
        )


class InvalidItemNameError(StorageError):
    """Raised when an item name is empty, hidden or escapes its share."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Invalid item name: {name!r}")


class ItemNotFoundError(StorageError):
    """Raised when the requested item does not exist in its share."""

    def __init__(self, share: str, item: str):
        self.share = share
        self.item = item
        super().__init__(f"Item not found: {share}/{item}")


class EmptyItemError(StorageError):
    """Raised when an upload transferred no bytes at all."""

    def __init__(self, item: str):
        self.item = item
        super().__init__(f"Empty item: {item}")
