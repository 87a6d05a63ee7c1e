import threading

import pytest

from bucketfs.filesystem.common import CorruptedNamespace, Kind, UnknownIdentity
from bucketfs.filesystem.identity import IdentityTable


def test_root():
    table = IdentityTable()

    root = table.resolve(1)

    assert root.path == "/"
    assert root.parent_id is None
    assert root.is_directory

    assert table.find("/") == root
    assert len(table) == 1


def test_allocation_starts_at_first_dynamic_id():
    table = IdentityTable()

    data_id = table.allocate_or_get("/data", Kind.DIRECTORY, 1)
    file_id = table.allocate_or_get("/data/file1.txt", Kind.FILE, data_id)

    assert data_id == 1000
    assert file_id == 1001


def test_allocation_is_idempotent():
    table = IdentityTable()

    first = table.allocate_or_get("/data", Kind.DIRECTORY, 1)
    second = table.allocate_or_get("/data", Kind.DIRECTORY, 1)

    assert first == second
    assert len(table) == 2


def test_bijection():
    table = IdentityTable()

    data_id = table.allocate_or_get("/data", Kind.DIRECTORY, 1)
    sub_id = table.allocate_or_get("/data/sub", Kind.DIRECTORY, data_id)
    table.allocate_or_get("/data/sub/file2.txt", Kind.FILE, sub_id)
    table.allocate_or_get("/data/file1.txt", Kind.FILE, data_id)

    for entry in table:
        assert table.resolve(entry.id) == entry
        assert table.find(entry.path) == entry

    assert len({entry.id for entry in table}) == len({entry.path for entry in table})


def test_monotonic_allocation():
    table = IdentityTable()

    ids = [table.allocate_or_get(f"/{i}", Kind.FILE, 1) for i in range(100)]

    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)
    assert min(ids) >= 1000


def test_unknown_identity():
    table = IdentityTable()

    with pytest.raises(UnknownIdentity):
        table.resolve(1000)

    assert table.find("/data") is None
    assert "/data" not in table


def test_kind_mismatch():
    table = IdentityTable()
    table.allocate_or_get("/data", Kind.DIRECTORY, 1)

    with pytest.raises(CorruptedNamespace):
        table.allocate_or_get("/data", Kind.FILE, 1)


def test_unknown_parent():
    table = IdentityTable()

    with pytest.raises(CorruptedNamespace):
        table.allocate_or_get("/data/file1.txt", Kind.FILE, 1234)

    assert len(table) == 1


def test_parent_is_file():
    table = IdentityTable()
    file_id = table.allocate_or_get("/file", Kind.FILE, 1)

    with pytest.raises(CorruptedNamespace):
        table.allocate_or_get("/file/nested", Kind.FILE, file_id)


def test_parent_path_mismatch():
    table = IdentityTable()
    table.allocate_or_get("/data", Kind.DIRECTORY, 1)

    with pytest.raises(CorruptedNamespace):
        table.allocate_or_get("/data/file1.txt", Kind.FILE, 1)


def test_concurrent_allocation():
    table = IdentityTable()
    results = []

    def allocate():
        results.append(table.allocate_or_get("/data", Kind.DIRECTORY, 1))

    threads = [threading.Thread(target=allocate) for _ in range(16)]

    for t in threads:
        t.start()

    for t in threads:
        t.join()

    assert set(results) == {1000}
    assert len(table) == 2
