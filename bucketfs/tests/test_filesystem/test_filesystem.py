import errno
import logging
import os

import pytest

from bucketfs.filesystem import BucketFileSystem
from bucketfs.filesystem.common import CorruptedNamespace


@pytest.fixture
def fs(handlers, contents):
    return BucketFileSystem(handlers, contents, "examplebucket")


def test_getattr(fs):
    attr = fs("getattr", "/data/file1.txt", None)

    assert attr["st_size"] == 10
    assert attr["st_ino"] >= 1000


def test_getattr_root(fs):
    attr = fs("getattr", "/")

    assert attr["st_ino"] == 1
    assert attr["st_nlink"] == 2


def test_getattr_missing(fs):
    with pytest.raises(FileNotFoundError):
        fs("getattr", "/data/missing")


def _names(entries):
    return [name for name, _, _ in entries]


def test_readdir(fs):
    assert _names(fs("readdir", "/", 0)) == [".", "..", "data"]
    assert _names(fs("readdir", "/data", 0)) == [".", "..", "file1.txt", "sub"]


def test_readdir_inode_numbers(fs):
    entries = {name: attrs for name, attrs, _ in fs("readdir", "/data", 0)}

    data_ino = fs("getattr", "/data")["st_ino"]

    assert entries["."]["st_ino"] == data_ino
    assert entries[".."]["st_ino"] == 1
    assert entries["file1.txt"]["st_ino"] == fs("getattr", "/data/file1.txt")["st_ino"]
    assert entries["sub"]["st_ino"] == fs("getattr", "/data/sub")["st_ino"]


def test_read(fs, store):
    fh = fs("open", "/data/file1.txt", os.O_RDONLY)

    try:
        assert fs("read", "/data/file1.txt", 100, 8, fh) == b"89"
        assert fs("read", "/data/file1.txt", 4, 0, fh) == b"0123"
    finally:
        fs("release", "/data/file1.txt", fh)

    assert store.fetch_calls == 1


def test_open_directory(fs):
    with pytest.raises(IsADirectoryError):
        fs("open", "/data", os.O_RDONLY)


def test_access(fs):
    fs("access", "/data/file1.txt", os.R_OK)

    with pytest.raises(PermissionError):
        fs("access", "/data/file1.txt", os.W_OK)


def test_statfs(fs):
    assert fs("statfs", "/")["f_namemax"] == 255


def test_xattrs(fs):
    assert fs("listxattr", "/data/file1.txt") == []

    with pytest.raises(OSError) as e:
        fs("getxattr", "/data/file1.txt", "user.test")

    assert e.value.errno == errno.ENODATA


@pytest.mark.parametrize(
    "op,args",
    [
        ("write", ("/data/file1.txt", b"abc", 0, 0)),
        ("create", ("/data/new.txt", 0o644)),
        ("truncate", ("/data/file1.txt", 0)),
        ("unlink", ("/data/file1.txt",)),
        ("mkdir", ("/data/dir", 0o755)),
        ("rmdir", ("/data/sub",)),
        ("rename", ("/data/file1.txt", "/data/file3.txt")),
        ("symlink", ("/data/link", "/data/file1.txt")),
        ("link", ("/data/link", "/data/file1.txt")),
        ("mknod", ("/data/node", 0o644, 0)),
        ("chmod", ("/data/file1.txt", 0o777)),
        ("chown", ("/data/file1.txt", 0, 0)),
        ("utimens", ("/data/file1.txt", None)),
        ("setxattr", ("/data/file1.txt", "user.test", b"abc", 0)),
        ("removexattr", ("/data/file1.txt", "user.test")),
    ],
)
def test_modifications_rejected(fs, store, op, args):
    with pytest.raises(OSError) as e:
        fs(op, *args)

    assert e.value.errno == errno.EROFS
    assert store.list_calls == 0
    assert store.objects["data/file1.txt"] == b"0123456789"


def test_unknown_operation(fs):
    with pytest.raises(OSError) as e:
        fs("bmap", "/", 0, 0)

    assert e.value.errno == errno.ENOSYS

    with pytest.raises(OSError) as e:
        fs("_handlers")

    assert e.value.errno == errno.ENOSYS


def test_corrupted_namespace(fs, handlers, monkeypatch, caplog):
    def corrupted(path):
        raise CorruptedNamespace("oops")

    monkeypatch.setattr(handlers, "resolve_path", corrupted)

    with pytest.raises(OSError) as e:
        fs("getattr", "/data")

    assert e.value.errno == errno.EIO
    assert "inconsistent namespace: oops" in caplog.text


def test_not_implemented(fs, handlers, monkeypatch):
    def not_implemented(path):
        raise NotImplementedError()

    monkeypatch.setattr(handlers, "resolve_path", not_implemented)

    with pytest.raises(OSError) as e:
        fs("getattr", "/data")

    assert e.value.errno == errno.ENOSYS


def test_unexpected_exception(fs, handlers, monkeypatch, caplog):
    caplog.set_level(logging.WARNING, logger="bucketfs")

    def broken(path):
        raise KeyError("foo")

    monkeypatch.setattr(handlers, "resolve_path", broken)

    with pytest.raises(OSError) as e:
        fs("getattr", "/data")

    assert e.value.errno == errno.EIO
    assert "raised an unexpected exception" in caplog.text
    assert "KeyError" in caplog.text


def test_os_error_without_errno(fs, handlers, monkeypatch):
    def broken(path):
        raise OSError("no errno")

    monkeypatch.setattr(handlers, "resolve_path", broken)

    with pytest.raises(OSError) as e:
        fs("getattr", "/data")

    assert e.value.errno == errno.EIO


def test_init(fs, caplog):
    caplog.set_level(logging.INFO, logger="bucketfs")

    fs("init", "/")

    assert "mounted bucket examplebucket" in caplog.text


def test_destroy_saves_contents(fs, tmp_path):
    fh = fs("open", "/data/file1.txt", os.O_RDONLY)
    fs("read", "/data/file1.txt", 10, 0, fh)
    fs("release", "/data/file1.txt", fh)

    fs("destroy", "/")

    assert (tmp_path / "cache" / "index.msgpack").exists()
