"""Module that adds flags to pytest to enable certain extra tests and shared fixtures."""

import threading
import time
from typing import Dict

import pytest

from bucketfs.filesystem.caching import ContentCache, MetadataCache
from bucketfs.filesystem.handlers import BucketHandlers
from bucketfs.filesystem.identity import IdentityTable
from bucketfs.filesystem.namespace import NamespaceSynthesizer
from bucketfs.store import Listing, ObjectInfo, RemoteNotFound, StoreClient

MODIFIED_AT = 1600000000.0
MOUNT_TIME = 1700000000.0


def pytest_addoption(parser):
    parser.addoption(
        "--fuse", action="store_true", default=False, help="Run FUSE tests"
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "fuse: mark test as requiring FUSE to run")


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--fuse"):
        skip_fuse = pytest.mark.skip(reason="only runs with --fuse option")

        for item in items:
            if "fuse" in item.keywords:
                item.add_marker(skip_fuse)


class MemoryStore(StoreClient):
    """Store client that serves objects from a dict and counts remote calls."""

    def __init__(self, objects: Dict[str, bytes]):
        self.objects = dict(objects)
        self.modified_at = MODIFIED_AT

        self.list_calls = 0
        self.fetch_calls = 0
        self.fetch_delay = 0.0

        self._lock = threading.Lock()

    def list(self, prefix: str, delimiter: str = "/") -> Listing:
        with self._lock:
            self.list_calls += 1

        listing = Listing()

        for key in sorted(self.objects):
            if not key.startswith(prefix):
                continue

            rest = key[len(prefix) :]

            if delimiter in rest:
                sub_prefix = prefix + rest.split(delimiter)[0] + delimiter

                if sub_prefix not in listing.sub_prefixes:
                    listing.sub_prefixes.append(sub_prefix)
            else:
                listing.objects.append(
                    ObjectInfo(
                        key=key,
                        size=len(self.objects[key]),
                        modified_at=self.modified_at,
                    )
                )

        return listing

    def fetch(self, key: str) -> bytes:
        with self._lock:
            self.fetch_calls += 1

        time.sleep(self.fetch_delay)

        try:
            return self.objects[key]
        except KeyError:
            raise RemoteNotFound(key) from None


@pytest.fixture
def store():
    return MemoryStore(
        {"data/file1.txt": b"0123456789", "data/sub/file2.txt": b"x" * 20}
    )


@pytest.fixture
def identities():
    return IdentityTable()


@pytest.fixture
def metadata():
    return MetadataCache(1024)


@pytest.fixture
def contents(tmp_path):
    return ContentCache(str(tmp_path / "cache"))


@pytest.fixture
def namespace(store, identities, metadata):
    return NamespaceSynthesizer(store, identities, metadata, mount_time=MOUNT_TIME)


@pytest.fixture
def handlers(store, identities, metadata, contents, namespace):
    return BucketHandlers(store, identities, metadata, contents, namespace)
