import asyncio
import threading


class ShareLocks:
    """
    Per-share asyncio locks.

    Backends hold a share's lock while they read, modify and rewrite its
    metadata record so that concurrent item mutations cannot overwrite each
    other's aggregates. Locks are process-local and are kept for the
    lifetime of the process, so a deleted share and its recreation still
    serialize on the same lock.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._global_lock = threading.Lock()

    def get(self, share: str) -> asyncio.Lock:
        """Get or create lock for this share."""
        if share not in self._locks:
            with self._global_lock:
                if share not in self._locks:
                    self._locks[share] = asyncio.Lock()
        return self._locks[share]
