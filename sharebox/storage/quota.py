"""
Quota arithmetic for uploads.

An upload is admitted against the share's current aggregate size and the
configured limits, then streamed through a reader bounded to one byte more
than the allowed window. Receiving that extra byte is how an oversized
stream is detected: a transfer of exactly the window succeeds, anything
larger is rejected.
"""
from dataclasses import dataclass
from typing import AsyncIterator

from sharebox.storage.exceptions import (
    EmptyItemError,
    MaxFileSizeReachedError,
    MaxShareSizeReachedError,
)

LIMITED_BY_SHARE = "share"
LIMITED_BY_ITEM = "item"


def mb_to_bytes(mb: int) -> int:
    return mb * 1024 * 1024


@dataclass(frozen=True)
class QuotaPlan:
    """
    Write window for a single upload.

    Attributes:
        share: Share name, used in error messages
        item: Item name, used in error messages
        allowed: Maximum number of bytes the item may contain, 0 if unlimited
        limited_by: Which limit produced the window ("share" or "item")
        max_share_bytes: Configured share limit in bytes
        max_item_bytes: Configured item limit in bytes
    """

    share: str
    item: str
    allowed: int
    limited_by: str | None
    max_share_bytes: int = 0
    max_item_bytes: int = 0

    @property
    def read_limit(self) -> int:
        """Number of bytes to pull from the source, 0 if unbounded."""
        if self.allowed == 0:
            return 0
        return self.allowed + 1

    def overflow_error(self) -> Exception:
        if self.limited_by == LIMITED_BY_ITEM:
            return MaxFileSizeReachedError(self.item, self.max_item_bytes)
        return MaxShareSizeReachedError(self.share, self.max_share_bytes)


def plan_write(
    share: str,
    item: str,
    share_size: int,
    max_share_bytes: int,
    max_item_bytes: int,
    declared_size: int = 0,
) -> QuotaPlan:
    """
    Compute the write window for an upload, failing fast when possible.

    Args:
        share: Share name
        item: Item name
        share_size: Current aggregate size of the share in bytes
        max_share_bytes: Share size limit in bytes, 0 for unlimited
        max_item_bytes: Item size limit in bytes, 0 for unlimited
        declared_size: Size announced by the caller, 0 if unknown

    Returns:
        QuotaPlan describing how many bytes the upload may write

    Raises:
        MaxShareSizeReachedError: If the share is already full, or the
            declared size does not fit in the remaining share capacity
        MaxFileSizeReachedError: If the declared size exceeds the item limit
    """
    allowed = 0
    limited_by = None

    if max_share_bytes > 0:
        remaining = max_share_bytes - share_size
        if remaining <= 0:
            raise MaxShareSizeReachedError(share, max_share_bytes)
        allowed = remaining
        limited_by = LIMITED_BY_SHARE

    if max_item_bytes > 0:
        if declared_size > max_item_bytes:
            raise MaxFileSizeReachedError(item, max_item_bytes)
        if allowed == 0 or max_item_bytes < allowed:
            allowed = max_item_bytes
            limited_by = LIMITED_BY_ITEM

    plan = QuotaPlan(
        share=share,
        item=item,
        allowed=allowed,
        limited_by=limited_by,
        max_share_bytes=max_share_bytes,
        max_item_bytes=max_item_bytes,
    )

    if allowed > 0 and declared_size > allowed:
        raise plan.overflow_error()

    return plan


def check_written(plan: QuotaPlan, written: int) -> None:
    """
    Validate the number of bytes actually transferred.

    Raises:
        EmptyItemError: If nothing was written
        MaxShareSizeReachedError / MaxFileSizeReachedError: If the transfer
            went past the allowed window
    """
    if written == 0:
        raise EmptyItemError(plan.item)
    if plan.allowed > 0 and written > plan.allowed:
        raise plan.overflow_error()


async def bounded(stream: AsyncIterator[bytes], limit: int) -> AsyncIterator[bytes]:
    """
    Yield chunks from stream until limit bytes have been produced.

    The last chunk is truncated to the limit and the source is not pulled
    any further once the limit is reached. A limit of 0 means unbounded.
    """
    if limit == 0:
        async for chunk in stream:
            yield chunk
        return

    remaining = limit
    async for chunk in stream:
        if len(chunk) >= remaining:
            yield chunk[:remaining]
            return
        remaining -= len(chunk)
        yield chunk
