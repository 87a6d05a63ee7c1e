"""Module that assigns stable identity (inode) numbers to file system paths."""

from __future__ import annotations

from dataclasses import dataclass
import posixpath
import threading
from typing import Dict, Iterator, Optional

from bucketfs.constants import FIRST_DYNAMIC_ID, ROOT_ID
from bucketfs.filesystem.common import CorruptedNamespace, Kind, UnknownIdentity
from bucketfs.logger import log


@dataclass(frozen=True)
class IdentityEntry:
    """A path that has been observed in the bucket, along with its identity number."""

    id: int
    path: str
    parent_id: Optional[int]
    kind: Kind

    @property
    def is_directory(self) -> bool:
        return self.kind == Kind.DIRECTORY


ROOT_ENTRY = IdentityEntry(id=ROOT_ID, path="/", parent_id=None, kind=Kind.DIRECTORY)


class IdentityTable:
    """
    Bidirectional mapping between identity numbers and paths.

    FUSE refers to file system entries by number across calls, while the bucket only
    knows keys. Numbers are handed out lazily the first time a path is observed, from
    a counter that only ever increases. They are never reused or forgotten for the
    lifetime of the mount, even if the underlying object disappears from the bucket.

    Allocation happens under a single lock. It is a pure in-memory operation, so the
    lock is never held while waiting on the remote store. This guarantees that two
    threads racing to register the same path end up with the same number.
    """

    def __init__(self, first_id: int = FIRST_DYNAMIC_ID):
        """Instantiate a table that only contains the root directory."""
        self._lock = threading.Lock()

        self._entries: Dict[int, IdentityEntry] = {ROOT_ID: ROOT_ENTRY}
        self._ids: Dict[str, int] = {ROOT_ENTRY.path: ROOT_ID}

        self._next_id = first_id

    def allocate_or_get(self, path: str, kind: Kind, parent_id: int) -> int:
        """
        Return the identity number of a path, allocating one if it's new.

        An existing path must be registered again with the same kind. The parent must be
        a known directory. Violations of either indicate an inconsistent namespace.
        """
        with self._lock:
            existing_id = self._ids.get(path)

            if existing_id is not None:
                existing = self._entries[existing_id]

                if existing.kind != kind:
                    raise CorruptedNamespace(
                        f"{path} is registered as {existing.kind.value}, "
                        f"not as {kind.value}"
                    )

                return existing_id

            parent = self._entries.get(parent_id)

            if (
                parent is None
                or not parent.is_directory
                or posixpath.dirname(path) != parent.path
            ):
                raise CorruptedNamespace(
                    f"{path} registered under invalid parent {parent_id}"
                )

            entry = IdentityEntry(
                id=self._next_id, path=path, parent_id=parent_id, kind=kind
            )
            self._next_id += 1

            self._entries[entry.id] = entry
            self._ids[path] = entry.id

        log.debug(f"allocated identity {entry.id} for {kind.value} {path}")

        return entry.id

    def resolve(self, id: int) -> IdentityEntry:
        """Return the entry with the specified identity number."""
        with self._lock:
            try:
                return self._entries[id]
            except KeyError:
                raise UnknownIdentity(f"unknown identity {id}") from None

    def find(self, path: str) -> Optional[IdentityEntry]:
        """Return the entry for a path, if it has been observed before."""
        with self._lock:
            id = self._ids.get(path)

            return self._entries[id] if id is not None else None

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[IdentityEntry]:
        with self._lock:
            return iter(list(self._entries.values()))
