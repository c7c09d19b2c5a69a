import time
from typing import Callable

from loguru import logger

from bucketfs.config import LISTING_CACHE_TTL_SECONDS
from bucketfs.stat import FileStat


class ListingCache:
    """Short-lived directory listings keyed by directory key.

    Entries are snapshots that expire ``ttl`` seconds after they were stored.
    Writes to the backend never invalidate them, so a lookup can be stale for
    up to ``ttl`` seconds. Concurrent stores to one slot: last write wins.
    """

    def __init__(
        self,
        ttl: float = LISTING_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[list[FileStat], float]] = {}

    def get(self, key: str) -> list[FileStat] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        listing, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None

        logger.debug(f"Listing cache hit for '{key}'")
        return listing

    def set(self, key: str, listing: list[FileStat]) -> None:
        self._purge_expired()
        self._entries[key] = (list(listing), self._clock() + self.ttl)

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)
