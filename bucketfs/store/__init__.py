"""
Modules that talk to the remote object store.

The file system only needs two calls from a store: a delimited listing of a key prefix
and a full download of a single object. Everything else, like authentication, request
signing, retries and timeouts, is handled by the client implementation.
"""

from .common import (
    Listing,
    ObjectInfo,
    RemoteNotFound,
    RemoteTimeout,
    RemoteUnavailable,
    StoreClient,
    StoreError,
)
from .s3 import cos_endpoint, resolve_endpoint, S3StoreClient

__all__ = [
    "Listing",
    "ObjectInfo",
    "RemoteNotFound",
    "RemoteTimeout",
    "RemoteUnavailable",
    "StoreClient",
    "StoreError",
    "S3StoreClient",
    "cos_endpoint",
    "resolve_endpoint",
]
