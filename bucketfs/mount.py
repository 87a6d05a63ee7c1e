"""Module that wires the file system components together and mounts them with FUSE."""

import hashlib
import os

from bucketfs.config import Config
import bucketfs.constants as constants
from bucketfs.filesystem import (
    BucketFileSystem,
    BucketHandlers,
    IdentityTable,
    NamespaceSynthesizer,
)
from bucketfs.filesystem.caching import ContentCache, MetadataCache
from bucketfs.logger import log
from bucketfs.store import resolve_endpoint, S3StoreClient, StoreClient


def validate_mount_point(path: str) -> None:
    """Check that a path is an existing, empty directory."""
    if not os.path.isdir(path):
        raise ValueError(f"mount point {path} is not an existing directory")

    if os.listdir(path):
        raise ValueError(f"mount point {path} is not empty")


def store_cache_path(config: Config) -> str:
    """
    Determine the directory that caches the contents of the configured bucket.

    Object paths are only unique within a bucket, so every bucket gets a directory of
    its own within the cache path. The same bucket behind another endpoint is
    considered a different bucket.
    """
    endpoint = resolve_endpoint(config.store) or f"s3:{config.store.region or ''}"
    identity = f"{endpoint}\n{config.store.bucket}"

    digest = hashlib.sha256(identity.encode(errors="surrogateescape")).hexdigest()

    return os.path.join(config.cache.path, "buckets", digest)


def create_filesystem(config: Config, store: StoreClient) -> BucketFileSystem:
    """Instantiate the file system for a bucket with fresh state."""
    identities = IdentityTable()
    metadata = MetadataCache(config.cache.max_entries)
    contents = ContentCache(store_cache_path(config), max_size=config.cache.max_size)

    namespace = NamespaceSynthesizer(store, identities, metadata)
    handlers = BucketHandlers(store, identities, metadata, contents, namespace)

    return BucketFileSystem(handlers, contents, config.store.bucket)


def mount(
    config: Config, mount_point: str, foreground: bool = True, threaded: bool = True
) -> None:
    """
    Mount the configured bucket and serve it until the file system is unmounted.

    Contents cached by earlier mounts are loaded first and the cache index is written
    back when the file system is unmounted.
    """
    # libfuse is located when fusepy is imported, so defer that until it's needed.
    from fuse import FUSE

    if not config.store.bucket:
        raise ValueError("no bucket specified")

    mount_point = os.path.abspath(mount_point)
    validate_mount_point(mount_point)

    store = S3StoreClient.from_config(config.store)
    fs = create_filesystem(config, store)

    fs.contents.load()

    log.info(f"mounting {config.store.bucket} at {mount_point}")

    FUSE(
        fs,
        mount_point,
        foreground=foreground,
        nothreads=not threaded,
        ro=True,
        use_ino=True,
        fsname=constants.FILESYSTEM_NAME,
    )
