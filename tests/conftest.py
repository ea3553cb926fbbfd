"""Shared test fixtures and utilities."""

from pathlib import Path

import pytest

from modelops_blobstore.blob_service import BlobService
from modelops_blobstore.config import StoreConfig
from modelops_blobstore.errors import StoreError
from modelops_blobstore.storage.fs import FilesystemRemoteStore


class RecordingStore:
    """FilesystemRemoteStore wrapper that records calls and injects failures."""

    def __init__(self, inner: FilesystemRemoteStore):
        self.inner = inner
        self.calls = []
        self.fail_stat = None      # exception to raise from stat
        self.fail_put = False      # leave a partial object and raise
        self.fail_delete = False

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)

    def stat(self, key):
        self.calls.append(("stat", key))
        if self.fail_stat is not None:
            raise self.fail_stat
        return self.inner.stat(key)

    def put(self, key, path, metadata, progress=None):
        self.calls.append(("put", key))
        if self.fail_put:
            # An interrupted transfer leaves a truncated object behind
            partial = self.inner._path_for(key)
            partial.parent.mkdir(parents=True, exist_ok=True)
            partial.write_bytes(b"partial")
            raise StoreError("connection reset by peer")
        self.inner.put(key, path, metadata, progress=progress)

    def get(self, key, dest):
        self.calls.append(("get", key))
        self.inner.get(key, dest)

    def delete(self, key):
        self.calls.append(("delete", key))
        if self.fail_delete:
            raise StoreError("delete refused")
        self.inner.delete(key)


@pytest.fixture
def spool_dir(tmp_path):
    """Private temp dir for spool files, so leaks are easy to spot."""
    d = tmp_path / "spool"
    d.mkdir()
    return d


@pytest.fixture
def config(spool_dir):
    return StoreConfig(spool_dir=spool_dir)


@pytest.fixture
def fs_store(tmp_path):
    return FilesystemRemoteStore(tmp_path / "remote")


@pytest.fixture
def store(fs_store):
    return RecordingStore(fs_store)


@pytest.fixture
def service(store, config):
    return BlobService(store, config)


@pytest.fixture
def hello_dir(tmp_path):
    """Directory d/ holding one 10-byte file a.txt = "helloworld"."""
    d = tmp_path / "d"
    d.mkdir()
    (d / "a.txt").write_text("helloworld")
    return d


@pytest.fixture
def make_tree(tmp_path):
    """Factory fixture building a directory tree from {relpath: content}."""
    def _make(name: str, files: dict) -> Path:
        root = tmp_path / name
        root.mkdir(parents=True, exist_ok=True)
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content)
        return root
    return _make

