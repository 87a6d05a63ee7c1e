"""
Module implementing the read-only file system operations on top of identity numbers.

Every operation either completes from the identity table and caches, or performs at most
one remote call (a listing or a download). No lock is held while waiting on the store,
and remote failures are never retried here: they're reported as I/O errors right away.
"""

from __future__ import annotations

from contextlib import contextmanager
import errno
import itertools
import os
import threading
from typing import Dict, Iterator, List, NoReturn, Optional, Tuple

from bucketfs.constants import ROOT_ID
from bucketfs.filesystem.caching.common import SingleFlight
from bucketfs.filesystem.caching.contents import ContentCache, ContentsBlob
from bucketfs.filesystem.caching.metadata import MetadataCache
from bucketfs.filesystem.common import (
    Attributes,
    BLOCK_SIZE,
    Kind,
    Metadata,
    normalize_path,
    not_a_directory,
    not_a_file,
    not_found,
    path_to_key,
    read_only,
    UnknownIdentity,
)
from bucketfs.filesystem.identity import IdentityEntry, IdentityTable
from bucketfs.filesystem.namespace import DirectoryEntry, NamespaceSynthesizer
from bucketfs.logger import log
from bucketfs.store import RemoteNotFound, StoreClient, StoreError

# Maximum length of a single path component
NAME_MAX = 255


class BucketHandlers:
    """
    Read-only file system operations on a bucket, addressed by identity number.

    The handlers are stateless across calls apart from the shared identity table,
    caches and open file handles. They can be invoked from any number of threads at
    the same time.
    """

    def __init__(
        self,
        store: StoreClient,
        identities: IdentityTable,
        metadata: MetadataCache,
        contents: ContentCache,
        namespace: NamespaceSynthesizer,
    ):
        """Instantiate the handlers with the shared state of a mount."""
        self._store = store
        self._identities = identities
        self._metadata = metadata
        self._contents = contents
        self._namespace = namespace

        self._fetches = SingleFlight()

        self._handles: Dict[int, IdentityEntry] = {}
        self._handle_ids = itertools.count(1)
        self._handles_lock = threading.Lock()

    #
    # Metadata access
    #

    def lookup(self, parent_id: int, name: str) -> Tuple[int, Attributes]:
        """Find an entry by name within a directory and return its attributes."""
        parent = self._resolve(parent_id)

        if not parent.is_directory:
            raise not_a_directory(parent.path)

        if name == ".":
            entry = parent
        elif name == "..":
            entry = self._resolve(parent.parent_id or ROOT_ID)
        else:
            with self._remote_call(f"lookup of {name} in {parent.path}"):
                entry = self._namespace.resolve_child(parent.path, name)

        return entry.id, self._attributes(entry)

    def get_attributes(self, id: int) -> Attributes:
        """Retrieve the attributes of an entry."""
        return self._attributes(self._resolve(id))

    def list_directory(self, id: int) -> List[DirectoryEntry]:
        """List the entries of a directory, starting with "." and ".."."""
        entry = self._resolve(id)

        if not entry.is_directory:
            raise not_a_directory(entry.path)

        with self._remote_call(f"listing of {entry.path}"):
            children = self._namespace.list_directory(entry.path)

        return [
            DirectoryEntry(name=".", id=entry.id, kind=Kind.DIRECTORY),
            DirectoryEntry(
                name="..", id=entry.parent_id or ROOT_ID, kind=Kind.DIRECTORY
            ),
        ] + children

    def resolve_path(self, path: str) -> IdentityEntry:
        """
        Find the entry for an absolute path.

        This walks the path from the root one component at a time. Every component that
        has been observed before is resolved without a remote call.
        """
        path = normalize_path(path)
        known = self._identities.find(path)

        if known is not None:
            return known

        entry = self._resolve(ROOT_ID)

        for name in path.strip("/").split("/"):
            if name:
                id, _ = self.lookup(entry.id, name)
                entry = self._resolve(id)

        return entry

    def access(self, id: int, mode: int) -> None:
        """Check access permissions. All entries are readable, none are writable."""
        entry = self._resolve(id)

        if mode & os.W_OK:
            raise PermissionError(errno.EACCES, os.strerror(errno.EACCES), entry.path)

    @staticmethod
    def statfs() -> dict:
        """Retrieve information about the file system."""
        return {
            "f_bsize": BLOCK_SIZE,
            "f_frsize": BLOCK_SIZE,
            "f_blocks": 0,
            "f_bfree": 0,
            "f_bavail": 0,
            "f_files": 0,
            "f_ffree": 0,
            "f_favail": 0,
            "f_namemax": NAME_MAX,
        }

    #
    # File operations
    #

    def open(self, id: int, flags: int) -> int:
        """
        Open a file for reading and return a handle for it.

        The contents are not downloaded until they're first read, but they are protected
        from being evicted from the cache for as long as the handle is open.
        """
        entry = self._resolve(id)

        if entry.kind != Kind.FILE:
            raise not_a_file(entry.path)

        write_flags = os.O_APPEND | os.O_CREAT | os.O_TRUNC

        if (flags & os.O_ACCMODE) != os.O_RDONLY or flags & write_flags:
            raise read_only(entry.path)

        self._contents.pin(entry.path)

        with self._handles_lock:
            fh = next(self._handle_ids)
            self._handles[fh] = entry

        return fh

    def release(self, fh: int) -> None:
        """Close a file handle."""
        with self._handles_lock:
            entry = self._handles.pop(fh, None)

        if entry is not None:
            self._contents.unpin(entry.path)

    def read(self, id: int, offset: int, length: int) -> bytes:
        """
        Read a range of bytes from a file.

        Reads beyond the end of the file are clipped to its size.
        """
        entry = self._resolve(id)

        if entry.kind != Kind.FILE:
            raise not_a_file(entry.path)

        with self._contents.pinned(entry.path):
            blob = self._materialize(entry)

            if offset >= blob.size:
                return b""

            return blob.read(offset, min(length, blob.size - offset))

    def reject_write(self, operation: str, path: str) -> NoReturn:
        """Fail a modifying operation. The file system is permanently read-only."""
        log.debug(f"rejected {operation} on read-only file system ({path})")

        raise read_only(path)

    #
    # Helpers
    #

    def _resolve(self, id: int) -> IdentityEntry:
        """Resolve an identity number, reporting unknown numbers as nonexistent."""
        try:
            return self._identities.resolve(id)
        except UnknownIdentity:
            raise not_found(f"#{id}") from None

    def _attributes(self, entry: IdentityEntry) -> Attributes:
        """Synthesize the attributes of an entry from its (cached) metadata."""
        return Attributes.from_metadata(entry.id, self._entry_metadata(entry))

    def _entry_metadata(self, entry: IdentityEntry) -> Metadata:
        """Retrieve the metadata of an entry, populating the cache on a miss."""
        if entry.id == ROOT_ID:
            return self._namespace.directory_metadata

        meta = self._metadata.get(entry.path)

        if meta is not None:
            return meta

        if entry.is_directory:
            meta = self._namespace.directory_metadata
        else:
            with self._remote_call(f"metadata lookup of {entry.path}"):
                meta = self._namespace.lookup_metadata(entry.path)

        self._metadata.put(entry.path, meta)

        return meta

    def _materialize(self, entry: IdentityEntry) -> ContentsBlob:
        """
        Return the cached contents of a file, downloading them if needed.

        Concurrent reads of the same uncached file result in a single download.
        """
        blob = self._cached_contents(entry)

        if blob is not None:
            return blob

        return self._fetches.do(entry.path, lambda: self._fetch_contents(entry))

    def _cached_contents(self, entry: IdentityEntry) -> Optional[ContentsBlob]:
        """
        Return the cached contents of a file if they can be used.

        Contents that were cached during an earlier mount are checked once against the
        metadata from the current listing and discarded if the object has changed. Only
        cached metadata is used for that check. If it has been evicted, the contents
        are downloaded again instead, so a read never needs both a listing and a
        download.
        """
        blob = self._contents.get(entry.path)

        if blob is None or blob.verified:
            return blob

        meta = self._metadata.get(entry.path)

        if meta is not None and blob.matches(meta):
            blob.verified = True
            return blob

        log.debug(f"cached contents of {entry.path} are outdated or unverifiable")

        return None

    def _fetch_contents(self, entry: IdentityEntry) -> ContentsBlob:
        """Download the contents of a file and store them in the cache."""
        # Another download may have completed between the cache check and now
        blob = self._cached_contents(entry)

        if blob is not None:
            return blob

        # The modification time is only recorded if it's known without another call
        meta = self._metadata.get(entry.path)
        modified_at = meta.modified_at if meta is not None else None

        key = path_to_key(entry.path)

        log.debug(f"downloading {key}")

        with self._remote_call(f"download of {entry.path}"):
            data = self._store.fetch(key)

        return self._contents.put(entry.path, data, modified_at)

    @contextmanager
    def _remote_call(self, description: str) -> Iterator[None]:
        """Report failed remote calls as I/O errors, or missing objects as such."""
        try:
            yield
        except RemoteNotFound as e:
            log.debug(f"{description} failed: {e}")
            raise not_found(description) from e
        except StoreError as e:
            log.error(f"{description} failed: {e}")
            raise OSError(errno.EIO, os.strerror(errno.EIO), description) from e
