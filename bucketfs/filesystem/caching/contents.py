"""Disk-backed cache of complete object contents."""

from __future__ import annotations

import collections
import contextlib
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
import hashlib
import os
import tempfile
import threading
import time
from typing import Counter, Dict, Iterator, Optional

import fasteners
import msgpack
import semver

from bucketfs.constants import CACHE_FORMAT_VERSION
from bucketfs.filesystem.common import Metadata
from bucketfs.logger import log
from .common import LockIndex

# Prefix of files that are still being written. They are never referenced by the index.
_INCOMING_PREFIX = ".incoming-"


@dataclass
class ContentsBlob:
    """
    Information about the cached contents of an object.

    Storage points to the file where the contents are stored. Its name is derived from
    the object path, so the same object always ends up in the same file.

    The size and modification time are those of the object at the time it was
    downloaded. They are compared with fresh listing metadata to detect contents that
    were cached during an earlier mount and have since changed. The modification time
    is unknown if the object was downloaded without its metadata at hand, in which
    case the contents never match any metadata.

    Last access is used for LRU cleaning.

    Verified is cleared for entries restored from disk, until their metadata has been
    checked against a fresh listing.
    """

    path: str
    storage: str
    size: int
    modified_at: Optional[float]

    last_access: float = field(default_factory=time.time)
    verified: bool = True

    def read(self, offset: int, size: int) -> bytes:
        """Read a range of the cached contents."""
        with open(self.storage, "rb") as f:
            f.seek(offset)
            return f.read(size)

    def matches(self, meta: Metadata) -> bool:
        """Check if the cached contents correspond to the given object metadata."""
        if self.modified_at is None:
            return False

        return self.size == meta.size and self.modified_at == meta.modified_at


class ContentCache:
    """
    Cache that stores the complete contents of objects as files on disk.

    Objects are always cached as a whole. Even a single byte read results in the entire
    object being downloaded, which trades bandwidth for simplicity and for the latency
    of subsequent reads.

    The total size of the cached contents can be bounded, in which case the least
    recently accessed entries are deleted after every insertion until the cache fits
    again. Entries can be pinned to protect them from eviction while they're being read
    from, and an entry that has just been inserted is never evicted by its own
    insertion.

    The index of cached entries can be persisted to disk with save() and restored with
    load(). The index is locked with an inter-process lock while it is read or written
    so that multiple mounts of the same bucket can share a cache directory. Object
    paths are only unique within a bucket, so a directory must never be shared between
    buckets. Files in the cache directory that are no longer referenced by the index
    are garbage collected upon saving.
    """

    def __init__(self, base_path: str, max_size: int = 0):
        """Instantiate a cache in the given directory, unbounded if max_size is 0."""
        self._base_path = base_path
        self._max_size = max_size

        self._entries: Dict[str, ContentsBlob] = {}
        self._pins: Counter[str] = collections.Counter()
        self._lock = threading.Lock()

        self._entry_locks = LockIndex()
        os.makedirs(self._contents_path, exist_ok=True)

    def count(self) -> int:
        """Return the number of cached entries."""
        with self._lock:
            return len(self._entries)

    def size(self) -> int:
        """Return the total number of bytes of contents being cached."""
        with self._lock:
            return sum(blob.size for blob in self._entries.values())

    def get(self, path: str) -> Optional[ContentsBlob]:
        """Retrieve the cached contents for a path, if any."""
        with self._lock:
            blob = self._entries.get(path)

            if blob is None:
                return None

            # Handle cases where the cached contents file has disappeared from disk
            if not os.path.exists(blob.storage):
                log.warning(f"cached contents of {path} disappeared from disk")
                del self._entries[path]
                return None

            blob.last_access = time.time()

            return blob

    def put(self, path: str, data: bytes, modified_at: Optional[float]) -> ContentsBlob:
        """
        Store the contents of an object and return the new cache entry.

        The contents are written to a temporary file first and then moved into place,
        so that concurrent readers of an older version never observe a partial file.
        """
        storage = self._storage_path(path)

        with self._entry_locks.lock(path):
            fd, incoming = tempfile.mkstemp(
                dir=self._contents_path, prefix=_INCOMING_PREFIX
            )

            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)

                os.replace(incoming, storage)
            except BaseException:
                with contextlib.suppress(FileNotFoundError):
                    os.remove(incoming)
                raise

            blob = ContentsBlob(
                path=path, storage=storage, size=len(data), modified_at=modified_at
            )

            with self._lock:
                self._entries[path] = blob
                self._lru_cleanup(keep=path)

        log.debug(f"cached {blob.size} bytes of contents for {path}")

        return blob

    def pin(self, path: str) -> None:
        """Protect the contents of a path from eviction until it is unpinned."""
        with self._lock:
            self._pins[path] += 1

    def unpin(self, path: str) -> None:
        """Release a pin previously acquired with pin()."""
        with self._lock:
            self._pins[path] -= 1

            if self._pins[path] <= 0:
                del self._pins[path]

    @contextmanager
    def pinned(self, path: str) -> Iterator[None]:
        """Pin the contents of a path for the duration of a block."""
        self.pin(path)

        try:
            yield
        finally:
            self.unpin(path)

    def clear(self) -> None:
        """Delete all cached contents that aren't pinned."""
        with self._lock:
            for path in list(self._entries):
                if not self._pins[path]:
                    self._remove_entry(path)

    def _lru_cleanup(self, keep: Optional[str] = None) -> None:
        """
        Delete the least recently used contents until the cache is below its limit.

        Pinned entries, the entry to keep, and entries that are being written by another
        thread at this very moment are skipped. Must be called with the lock held.
        """
        if not self._max_size:
            return

        total_size = sum(blob.size for blob in self._entries.values())

        oldest_entries = sorted(self._entries.values(), key=lambda b: b.last_access)

        for blob in oldest_entries:
            if total_size <= self._max_size:
                break

            if blob.path == keep or self._pins[blob.path]:
                continue

            with self._entry_locks.lock(blob.path, False) as acquired:
                if not acquired:
                    continue

                self._remove_entry(blob.path)
                total_size -= blob.size

                log.debug(f"evicted cached contents of {blob.path}")

    def _remove_entry(self, path: str) -> None:
        """Forget an entry and delete its contents. Must be called with the lock held."""
        blob = self._entries.pop(path)

        with contextlib.suppress(FileNotFoundError):
            os.remove(blob.storage)

    def _storage_path(self, path: str) -> str:
        """Determine the file that stores the contents of an object path."""
        digest = hashlib.sha256(path.encode(errors="surrogateescape")).hexdigest()

        return os.path.join(self._contents_path, digest)

    #
    # Persistence
    #

    def load(self) -> None:
        """
        Restore the cache entries of a previous mount from the disk index.

        Entries whose contents have disappeared from disk are ignored. An index that is
        unreadable or that was written in an incompatible format is discarded.
        """
        with fasteners.InterProcessLock(self._cache_lock_path):
            try:
                disk_entries = self._read_disk_entries()
            except FileNotFoundError:
                log.debug("no content cache index to load")
                return
            except Exception as e:
                log.error(f"discarding unreadable content cache index: {e}")
                return

        with self._lock:
            for path, blob in disk_entries.items():
                if path not in self._entries and os.path.exists(blob.storage):
                    blob.verified = False
                    self._entries[path] = blob

        log.info(f"loaded {len(disk_entries)} cached objects from disk")

    def save(self, merge_disk_cache: bool = True) -> None:
        """
        Update the disk index from the in-memory cache.

        If there is already an index on disk then it is read first to merge any entries
        that another mount has added in the meanwhile. Afterwards the LRU cleanup runs
        and files that are no longer referenced are deleted.
        """
        with fasteners.InterProcessLock(self._cache_lock_path):
            disk_entries: Dict[str, ContentsBlob] = {}

            if merge_disk_cache:
                try:
                    disk_entries = self._read_disk_entries()
                except FileNotFoundError:
                    log.debug("no content cache index to merge with")
                except Exception as e:
                    log.error(f"not merging with existing content cache index: {e}")

            with self._lock:
                for path, blob in disk_entries.items():
                    if path not in self._entries and os.path.exists(blob.storage):
                        self._entries[path] = blob

                self._lru_cleanup()

                entries = dict(self._entries)

            self._garbage_collect_blobs(entries)

            index = {
                "version": CACHE_FORMAT_VERSION,
                "entries": {
                    path: asdict(blob) for path, blob in entries.items()
                },
            }

            with open(self._cache_index_path, "wb") as f:
                f.write(msgpack.packb(index))

    def _read_disk_entries(self) -> Dict[str, ContentsBlob]:
        """Deserialize cache entries from the disk index."""
        with open(self._cache_index_path, "rb") as f:
            index = msgpack.unpackb(f.read())

        version = semver.VersionInfo.parse(index["version"])
        expected = semver.VersionInfo.parse(CACHE_FORMAT_VERSION)

        if version.major != expected.major:
            raise ValueError(f"incompatible format ({version} != {expected})")

        return {
            path: ContentsBlob(**fields) for path, fields in index["entries"].items()
        }

    def _garbage_collect_blobs(self, entries: Dict[str, ContentsBlob]) -> None:
        """Delete cached contents on disk that are no longer referenced."""
        referenced = {blob.storage for blob in entries.values()}

        for fn in os.listdir(self._contents_path):
            storage = os.path.join(self._contents_path, fn)

            if fn.startswith(_INCOMING_PREFIX) or storage in referenced:
                continue

            try:
                os.remove(storage)
            except FileNotFoundError:
                # Race condition where blob has already been removed
                pass

    @property
    def _cache_index_path(self) -> str:
        """Return the path to the disk cache index."""
        return os.path.join(self._base_path, "index.msgpack")

    @property
    def _cache_lock_path(self) -> str:
        """Return the path to the disk cache index lock file."""
        return os.path.join(self._base_path, "index.lock")

    @property
    def _contents_path(self) -> str:
        """Return the path to the contents cache directory."""
        return os.path.join(self._base_path, "contents")
