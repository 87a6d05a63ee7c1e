"""
Modules that present the contents of a bucket as a read-only file system.

Object stores like S3 and COS don't have directories, only objects with keys, and they
don't have inode numbers either. This package bridges the gap with three pieces:

* The identity table, which hands out stable numbers to every path that is observed.
* The namespace synthesizer, which turns delimited listings into directories.
* The handlers, which implement the file system operations on top of identity numbers
  and the caches in the 'caching' submodule.

The FUSE adapter finally translates the path-based callbacks of the kernel into calls to
the handlers. The file system is read-only, every modification fails with EROFS.

Latency is the primary performance concern since every listing and download is a round
trip over the internet. Metadata from listings is therefore kept in memory and object
contents are kept on disk, where they survive remounts.
"""

from .filesystem import BucketFileSystem
from .handlers import BucketHandlers
from .identity import IdentityTable
from .namespace import NamespaceSynthesizer

__all__ = [
    "BucketFileSystem",
    "BucketHandlers",
    "IdentityTable",
    "NamespaceSynthesizer",
]
