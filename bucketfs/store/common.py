"""Data structures and errors shared by all object store clients."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List


@dataclass
class ObjectInfo:
    """A stored object as reported by a listing, with its size and modification time."""

    key: str
    size: int
    modified_at: float


@dataclass
class Listing:
    """
    Result of a delimited listing.

    Sub-prefixes are the keys of the next level that continue past the delimiter,
    including the trailing delimiter itself (e.g. "data/sub/"). Objects are the keys
    that end at this level.
    """

    sub_prefixes: List[str] = field(default_factory=list)
    objects: List[ObjectInfo] = field(default_factory=list)


class StoreError(Exception):
    """Base class for failures of a remote object store call."""


class RemoteUnavailable(StoreError):
    """The store could not be reached or refused to handle the request."""


class RemoteTimeout(StoreError):
    """The store did not respond in time."""


class RemoteNotFound(StoreError):
    """The requested object does not exist (anymore)."""


class StoreClient(ABC):
    """
    Interface for the two remote operations the file system needs.

    Implementations may be slow and fallible. They are called concurrently from
    multiple threads, and any retry or timeout policy is their own responsibility.
    """

    @abstractmethod
    def list(self, prefix: str, delimiter: str = "/") -> Listing:
        """List the immediate sub-prefixes and objects below a key prefix."""

    @abstractmethod
    def fetch(self, key: str) -> bytes:
        """Download the full contents of an object."""
