"""
Module that synthesizes a directory hierarchy from a flat object key space.

Object stores have no directories, only keys like "data/sub/file2.txt". A directory
level is derived on demand with a delimited listing: listing with prefix "data/" and
delimiter "/" returns the keys directly below "data/" as objects and everything deeper
collapsed into sub-prefixes like "data/sub/". These become the files and directories of
"/data" respectively.

No tree is kept in memory. Directories are listed again whenever their contents are
needed and the metadata cache is relied upon to keep the number of listings down.
"""

from __future__ import annotations

from dataclasses import dataclass
import posixpath
import time
from typing import List, Optional, Set, Tuple

from bucketfs.constants import DELIMITER
from bucketfs.filesystem.caching.metadata import MetadataCache
from bucketfs.filesystem.common import (
    child_path,
    Kind,
    Metadata,
    not_a_directory,
    not_found,
    path_to_prefix,
)
from bucketfs.filesystem.identity import IdentityEntry, IdentityTable
from bucketfs.logger import log, summarize
from bucketfs.store import Listing, StoreClient


@dataclass(frozen=True)
class DirectoryEntry:
    """Named entry within a directory listing."""

    name: str
    id: int
    kind: Kind


class NamespaceSynthesizer:
    """
    Builds the virtual directory view of a bucket.

    Every entry that shows up in a listing is registered in the identity table and has
    its metadata stored in the metadata cache. A listing already carries the size and
    modification time of every object in the directory, so this saves a separate
    metadata lookup for every entry that is subsequently stat()'ed.

    Remote errors are propagated unchanged. Directories have no metadata of their own
    in the bucket, so they are reported with a size of zero and the mount time as their
    modification time.
    """

    def __init__(
        self,
        store: StoreClient,
        identities: IdentityTable,
        metadata: MetadataCache,
        mount_time: Optional[float] = None,
    ):
        """Instantiate a synthesizer for the bucket behind a store client."""
        self._store = store
        self._identities = identities
        self._metadata = metadata

        self._mount_time = mount_time if mount_time is not None else time.time()

    @property
    def directory_metadata(self) -> Metadata:
        """Return the metadata that is reported for every directory."""
        return Metadata(kind=Kind.DIRECTORY, size=0, modified_at=self._mount_time)

    def list_directory(self, path: str) -> List[DirectoryEntry]:
        """List the entries of a directory, sorted by name."""
        return [entry for entry, _ in self._synthesize(path)]

    def resolve_child(self, parent_path: str, name: str) -> IdentityEntry:
        """
        Find an entry by name within a directory.

        Entries that have been observed before are returned without a remote call.
        Otherwise the directory is listed to find out if the entry exists.
        """
        path = child_path(parent_path, name)

        known = self._identities.find(path)

        if known is not None:
            return known

        for entry, _ in self._synthesize(parent_path):
            if entry.name == name:
                return self._identities.resolve(entry.id)

        raise not_found(path)

    def lookup_metadata(self, path: str) -> Metadata:
        """
        Look up the current metadata of an entry by listing its parent directory.

        Besides returning the metadata of the entry itself, this refreshes the cached
        metadata of all of its siblings.
        """
        known = self._identities.find(path)

        if known is not None and known.is_directory:
            return self.directory_metadata

        parent_path, name = posixpath.split(path)

        for entry, meta in self._synthesize(parent_path):
            if entry.name == name:
                return meta

        raise not_found(path)

    def _synthesize(self, path: str) -> List[Tuple[DirectoryEntry, Metadata]]:
        """List a directory and register all of its entries."""
        parent = self._identities.find(path)

        if parent is None:
            raise not_found(path)
        elif not parent.is_directory:
            raise not_a_directory(path)

        prefix = path_to_prefix(path)

        log.debug(f"listing prefix {prefix!r}")

        listing = self._store.list(prefix, DELIMITER)

        log.debug(f"listing of {prefix!r} returned {summarize(listing)}")

        return self._register_listing(parent, prefix, listing)

    def _register_listing(
        self, parent: IdentityEntry, prefix: str, listing: Listing
    ) -> List[Tuple[DirectoryEntry, Metadata]]:
        """Turn the results of a listing into directory entries."""
        results: List[Tuple[DirectoryEntry, Metadata]] = []
        directory_names: Set[str] = set()

        for sub_prefix in listing.sub_prefixes:
            name = self._child_name(prefix, sub_prefix)

            if name is None:
                continue

            meta = self.directory_metadata
            results.append(self._register(parent, name, meta))
            directory_names.add(name)

        for obj in listing.objects:
            # The prefix itself may exist as an (empty) object to mark the directory
            if obj.key == prefix:
                continue

            name = self._child_name(prefix, obj.key)

            if name is None:
                continue

            if name in directory_names:
                log.warning(f"ignoring object {obj.key} that shadows a directory")
                continue

            meta = Metadata(kind=Kind.FILE, size=obj.size, modified_at=obj.modified_at)
            results.append(self._register(parent, name, meta))

        results.sort(key=lambda result: result[0].name)

        return results

    def _register(
        self, parent: IdentityEntry, name: str, meta: Metadata
    ) -> Tuple[DirectoryEntry, Metadata]:
        """Assign an identity to a directory entry and cache its metadata."""
        path = child_path(parent.path, name)

        id = self._identities.allocate_or_get(path, meta.kind, parent.id)
        self._metadata.put(path, meta)

        return DirectoryEntry(name=name, id=id, kind=meta.kind), meta

    @staticmethod
    def _child_name(prefix: str, key: str) -> Optional[str]:
        """
        Derive the name of a directory entry from a key or sub-prefix.

        Keys that can't be represented as a file name, like "a//b" or "a/../b", are
        skipped since they would otherwise alias other paths.
        """
        if not key.startswith(prefix):
            log.warning(f"ignoring key {key!r} outside of prefix {prefix!r}")
            return None

        name = key[len(prefix) :]

        if name.endswith(DELIMITER):
            name = name[: -len(DELIMITER)]

        if not name or DELIMITER in name or name in (".", ".."):
            log.debug(f"ignoring key {key!r} without valid file name")
            return None

        return name
