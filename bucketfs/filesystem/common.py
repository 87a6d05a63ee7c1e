"""Data structures used by multiple file system components."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import errno
import math
import os
import posixpath
import stat

from bucketfs.constants import DELIMITER

# Block sizes reported to FUSE. Objects are accounted in 512 byte blocks, like st_blocks
# is defined by POSIX.
BLOCK_SIZE = 4096
STAT_BLOCK_SIZE = 512


class Kind(Enum):
    """Type of a file system entry."""

    DIRECTORY = "directory"
    FILE = "file"


@dataclass
class Metadata:
    """Cached attributes of a file system entry, as derived from a listing."""

    kind: Kind
    size: int
    modified_at: float


@dataclass
class Attributes:
    """Container of file system attributes in the form that FUSE expects."""

    st_mode: int
    st_ino: int
    st_nlink: int
    st_uid: int
    st_gid: int
    st_size: int
    st_blocks: int
    st_blksize: int
    st_atime: float
    st_mtime: float
    st_ctime: float

    @staticmethod
    def from_metadata(ino: int, meta: Metadata) -> Attributes:
        """
        Synthesize attributes for an entry from its metadata.

        All entries are exposed read-only and owned by the user that mounted the
        bucket, since object stores have no notion of POSIX permissions.
        """
        if meta.kind == Kind.DIRECTORY:
            mode = stat.S_IFDIR | 0o555
            nlink = 2
        else:
            mode = stat.S_IFREG | 0o444
            nlink = 1

        return Attributes(
            st_mode=mode,
            st_ino=ino,
            st_nlink=nlink,
            st_uid=os.getuid(),
            st_gid=os.getgid(),
            st_size=meta.size,
            st_blocks=math.ceil(meta.size / STAT_BLOCK_SIZE),
            st_blksize=BLOCK_SIZE,
            st_atime=meta.modified_at,
            st_mtime=meta.modified_at,
            st_ctime=meta.modified_at,
        )


class UnknownIdentity(LookupError):
    """Raised when an identity number has never been allocated."""


class CorruptedNamespace(RuntimeError):
    """
    Raised when the identity table would stop being consistent.

    This happens if a path is registered with two different kinds, or under a parent
    that isn't a known directory. It indicates a bug rather than remote state and must
    never be confused with an entry that simply doesn't exist.
    """


def not_found(path: str) -> FileNotFoundError:
    return FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)


def not_a_directory(path: str) -> NotADirectoryError:
    return NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), path)


def not_a_file(path: str) -> IsADirectoryError:
    return IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)


def read_only(path: str) -> OSError:
    return OSError(errno.EROFS, os.strerror(errno.EROFS), path)


def normalize_path(path: str) -> str:
    """Normalize a path to an absolute path without trailing delimiter."""
    # POSIX preserves exactly two leading slashes, which isn't wanted here.
    return posixpath.normpath("/" + path.lstrip("/"))


def child_path(parent_path: str, name: str) -> str:
    """Return the path of an entry within a directory."""
    return posixpath.join(parent_path, name)


def path_to_key(path: str) -> str:
    """Return the object key that corresponds to a (normalized) path."""
    return path.lstrip(DELIMITER)


def path_to_prefix(path: str) -> str:
    """Return the key prefix under which the children of a directory are stored."""
    key = path_to_key(path)

    return key + DELIMITER if key else ""
