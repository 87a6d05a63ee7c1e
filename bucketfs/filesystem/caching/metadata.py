"""In-memory LRU cache of file system entry metadata."""

import collections
import threading
from typing import Optional

from bucketfs.filesystem.common import Metadata
from bucketfs.logger import log


class MetadataCache:
    """
    Bounded cache that maps paths to their metadata.

    Listings are the expensive part of browsing a bucket, and every listing returns the
    metadata of all entries in a directory at once. Keeping that metadata around means
    that a stat() following a readdir() doesn't need another round trip.

    Entries are evicted in least recently used order once the capacity is exceeded.
    Eviction only forgets metadata: identity numbers are tracked separately and remain
    valid, so an evicted entry is simply looked up again on its next access.

    A single lock guards all operations. None of them perform I/O, so the lock is never
    held for long.
    """

    def __init__(self, capacity: int):
        """Instantiate an empty cache that holds up to capacity entries."""
        if capacity < 1:
            raise ValueError("metadata cache capacity must be at least 1")

        self._capacity = capacity
        self._entries: "collections.OrderedDict[str, Metadata]" = (
            collections.OrderedDict()
        )
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, path: str) -> Optional[Metadata]:
        """Retrieve the metadata for a path and mark it as most recently used."""
        with self._lock:
            meta = self._entries.get(path)

            if meta is not None:
                self._entries.move_to_end(path)

            return meta

    def put(self, path: str, meta: Metadata) -> None:
        """Insert or replace the metadata for a path, evicting old entries if needed."""
        with self._lock:
            self._entries[path] = meta
            self._entries.move_to_end(path)

            while len(self._entries) > self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                log.debug(f"evicted metadata of {evicted}")

    def invalidate(self, path: str) -> None:
        """Forget the metadata for a path, if any."""
        with self._lock:
            self._entries.pop(path, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
