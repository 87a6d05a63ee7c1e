"""
Modules that cache metadata and contents of a bucket.

There are two tiers. The metadata cache lives in memory and holds the kind, size and
modification time of recently listed entries, bounded by a number of entries. Listings
return this information for an entire directory at once, so a single listing warms the
cache for every stat() of the files in it.

The content cache holds complete object contents on disk, bounded by total size. A read
of any part of an object downloads it as a whole, on the assumption that bandwidth is
much cheaper than latency and that a file that is read from will be read in its entirety.
The index of the content cache is persisted when unmounting, so contents survive across
mounts. Since the bucket may change in the meanwhile, restored contents are checked
against fresh listing metadata before they are used.
"""

from .contents import ContentCache, ContentsBlob
from .metadata import MetadataCache

__all__ = [
    "ContentCache",
    "ContentsBlob",
    "MetadataCache",
]
