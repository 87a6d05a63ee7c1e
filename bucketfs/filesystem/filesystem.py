"""Module that exposes the bucket handlers as a FUSE file system."""

from __future__ import annotations

import errno
import os
import sys
import threading
import traceback
from typing import Any, List, Optional, Tuple

from bucketfs.filesystem.caching.contents import ContentCache
from bucketfs.filesystem.common import CorruptedNamespace
from bucketfs.filesystem.handlers import BucketHandlers
from bucketfs.logger import log


class BucketFileSystem:
    """
    FUSE file system that serves a bucket through the identity-based handlers.

    The high-level FUSE API addresses entries by path, so every call first resolves
    its path to an identity number. Paths that have been seen before resolve from
    memory. The file system is mounted with use_ino, so the identity numbers are what
    applications see as inode numbers.

    Instances are invoked as operations(name, *args) from an arbitrary number of FUSE
    threads. Only operations that are defined on this class are registered with FUSE.

    Functions return errors by raising OSError with the errno set. Everything that
    modifies the file system fails with EROFS.
    """

    def __init__(self, handlers: BucketHandlers, contents: ContentCache, name: str):
        """Instantiate the file system for the bucket with the given name."""
        self._handlers = handlers
        self._contents = contents
        self._name = name

    @property
    def contents(self) -> ContentCache:
        """Return the content cache that backs the file system."""
        return self._contents

    def __call__(self, op: str, *args: Any) -> Any:
        """Dispatch a FUSE operation and translate exceptions into errno values."""
        # Support coverage.py within FUSE threads.
        if hasattr(threading, "_trace_hook"):
            sys.settrace(getattr(threading, "_trace_hook"))

        fn = getattr(self, op, None)

        if fn is None or op.startswith("_"):
            raise OSError(errno.ENOSYS, os.strerror(errno.ENOSYS))

        try:
            return fn(*args)
        except OSError as e:
            # FUSE expects every error to come with an errno.
            if e.errno:
                raise
            else:
                raise OSError(errno.EIO, os.strerror(errno.EIO)) from e
        except CorruptedNamespace as e:
            log.critical(f"fuse::{op}() found an inconsistent namespace: {e}")

            raise OSError(errno.EIO, os.strerror(errno.EIO)) from e
        except NotImplementedError:
            log.debug(f"fuse::{op}() not implemented!")

            raise OSError(errno.ENOSYS, os.strerror(errno.ENOSYS))
        except Exception as e:
            log.warning(f"fuse::{op}() raised an unexpected exception:")
            log.warning(traceback.format_exc())

            raise OSError(errno.EIO, os.strerror(errno.EIO)) from e

    def init(self, path: str) -> None:
        """File system has been successfully mounted by FUSE."""
        log.info(f"mounted bucket {self._name}")

    def destroy(self, path: str) -> None:
        """Persist the content cache index as part of unmounting the file system."""
        self._contents.save()

    #
    # File operations
    #

    def open(self, path: str, flags: int) -> int:
        entry = self._handlers.resolve_path(path)
        return self._handlers.open(entry.id, flags)

    def read(self, path: str, size: int, offset: int, fh: int) -> bytes:
        entry = self._handlers.resolve_path(path)
        return self._handlers.read(entry.id, offset, size)

    def release(self, path: str, fh: int) -> None:
        self._handlers.release(fh)

    #
    # Metadata access
    #

    def getattr(self, path: str, fh: Optional[int] = None) -> dict:
        entry = self._handlers.resolve_path(path)
        return dict(self._handlers.get_attributes(entry.id).__dict__)

    def readdir(self, path: str, fh: int) -> List[Tuple[str, dict, int]]:
        """List a directory with the identity number of every entry as its inode."""
        entry = self._handlers.resolve_path(path)

        return [
            (child.name, {"st_ino": child.id}, 0)
            for child in self._handlers.list_directory(entry.id)
        ]

    def access(self, path: str, amode: int) -> None:
        entry = self._handlers.resolve_path(path)
        self._handlers.access(entry.id, amode)

    def statfs(self, path: str) -> dict:
        return self._handlers.statfs()

    def listxattr(self, path: str) -> List[str]:
        """List extended attributes. Objects never have any."""
        self._handlers.resolve_path(path)
        return []

    def getxattr(self, path: str, name: str, *args: Any) -> bytes:
        """Retrieve an extended attribute. Objects never have any."""
        self._handlers.resolve_path(path)
        raise OSError(errno.ENODATA, os.strerror(errno.ENODATA), path)

    #
    # Modification (always rejected)
    #

    def write(self, path: str, *args: Any) -> int:
        self._handlers.reject_write("write", path)

    def create(self, path: str, *args: Any) -> int:
        self._handlers.reject_write("create", path)

    def truncate(self, path: str, *args: Any) -> None:
        self._handlers.reject_write("truncate", path)

    def unlink(self, path: str) -> None:
        self._handlers.reject_write("unlink", path)

    def mkdir(self, path: str, mode: int) -> None:
        self._handlers.reject_write("mkdir", path)

    def rmdir(self, path: str) -> None:
        self._handlers.reject_write("rmdir", path)

    def rename(self, old: str, new: str) -> None:
        self._handlers.reject_write("rename", old)

    def symlink(self, path: str, target: str) -> None:
        self._handlers.reject_write("symlink", path)

    def link(self, path: str, target: str) -> None:
        self._handlers.reject_write("link", path)

    def mknod(self, path: str, mode: int, dev: int) -> None:
        self._handlers.reject_write("mknod", path)

    def chmod(self, path: str, mode: int) -> None:
        self._handlers.reject_write("chmod", path)

    def chown(self, path: str, uid: int, gid: int) -> None:
        self._handlers.reject_write("chown", path)

    def utimens(self, path: str, times: Any = None) -> None:
        self._handlers.reject_write("utimens", path)

    def setxattr(self, path: str, name: str, *args: Any) -> None:
        self._handlers.reject_write("setxattr", path)

    def removexattr(self, path: str, name: str) -> None:
        self._handlers.reject_write("removexattr", path)
