"""Tests for BlobService: dedup-then-upload, failure cleanup and fetch."""

import gzip
import hashlib
import io
import json
import os
import zipfile
from unittest.mock import Mock

import pytest

from modelops_blobstore.blob import CompressionStage, LocalBlob
from modelops_blobstore.blob_service import BlobService
from modelops_blobstore.config import StoreConfig
from modelops_blobstore.errors import (
    DigestMismatchError,
    FlushError,
    NotFoundError,
    PackagingError,
    ResourceAllocationError,
    StoreError,
    UploadError,
)
from modelops_blobstore.packing import pack_directory
from modelops_blobstore.storage_models import UploadMetadata, object_key


class RecordingProgress:
    """ProgressCallback that records every event."""

    def __init__(self):
        self.events = []

    def on_upload_start(self, key, total):
        self.events.append(("start", key, total))

    def on_progress(self, key, transferred):
        self.events.append(("progress", key, transferred))

    def on_upload_complete(self, key):
        self.events.append(("complete", key))


def _tar_digest(src) -> str:
    buf = io.BytesIO()
    pack_directory(src, buf)
    return hashlib.sha256(buf.getvalue()).hexdigest()


def snapshot_tree(root) -> dict:
    """Map relative path to bytes (files), None (dirs) or "-> target" (symlinks)."""
    result = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        if path.is_symlink():
            result[rel] = "-> " + os.readlink(path)
        elif path.is_dir():
            result[rel] = None
        else:
            result[rel] = path.read_bytes()
    return result


class TestUploadDirectory:
    """Directory uploads and content-addressed dedup."""

    def test_upload_twice_stores_once(self, service, store, hello_dir):
        first = service.upload_directory(hello_dir)
        second = service.upload_directory(hello_dir)

        assert first.uploaded is True
        assert second.uploaded is False
        assert first.digest == second.digest
        assert first.key == f"blob/{first.digest}.gz"
        assert store.count("put") == 1
        assert store.inner.stat(first.key).size == first.size == second.size

    def test_digest_is_sha256_of_tar_stream(self, service, hello_dir):
        result = service.upload_directory(hello_dir)
        assert result.digest == _tar_digest(hello_dir)
        assert result.is_dir is True
        assert result.reference == "d"

    def test_object_is_gzip_of_tar(self, service, store, hello_dir):
        result = service.upload_directory(hello_dir)
        raw = gzip.decompress((store.inner.base_dir / result.key).read_bytes())
        assert len(raw) == result.uncompressed_size
        assert hashlib.sha256(raw).hexdigest() == result.digest

    def test_metadata_recorded(self, service, store, hello_dir):
        result = service.upload_directory(hello_dir, reference="My Model")
        info = store.inner.stat(result.key)
        assert info.metadata == UploadMetadata(
            uncompressed_size=result.uncompressed_size,
            reference_name="My Model",
            is_dir=True,
        )

    def test_reference_does_not_affect_key(self, service, store, hello_dir):
        a = service.upload_directory(hello_dir, reference="one")
        b = service.upload_directory(hello_dir, reference="two")
        assert a.key == b.key
        assert store.count("put") == 1

    def test_identical_trees_share_a_key(self, service, store, make_tree):
        a = make_tree("a", {"x.txt": "same", "sub/y.txt": "also same"})
        b = make_tree("b", {"x.txt": "same", "sub/y.txt": "also same"})
        assert service.upload_directory(a).key == service.upload_directory(b).key
        assert store.count("put") == 1

    def test_digest_independent_of_compress_level(self, store, spool_dir, hello_dir):
        fast = BlobService(store, StoreConfig(spool_dir=spool_dir, compress_level=1))
        best = BlobService(store, StoreConfig(spool_dir=spool_dir, compress_level=9))
        assert fast.upload_directory(hello_dir).digest == best.upload_directory(hello_dir).digest

    def test_exclusions_change_content(self, service, make_tree):
        tree = make_tree("m", {"keep.txt": "k", "skip.log": "s"})
        full = service.upload_directory(tree)
        trimmed = service.upload_directory(tree, exclude=["*.log"])
        assert full.digest != trimmed.digest

    def test_spool_removed_after_upload(self, service, spool_dir, hello_dir):
        service.upload_directory(hello_dir)
        service.upload_directory(hello_dir)
        assert list(spool_dir.iterdir()) == []

    def test_accepts_string_path(self, service, hello_dir):
        assert service.upload_directory(str(hello_dir)).reference == "d"


class TestDuplicateCheck:
    """Existence plus matching compressed size is a duplicate; anything else is not."""

    def _sealed(self, spool_dir, data=b"dup check"):
        blob = LocalBlob.create(spool_dir=spool_dir)
        blob.write(data)
        blob.close()
        return blob

    def test_absent(self, service, spool_dir):
        with self._sealed(spool_dir) as blob:
            assert service.check_duplicate(blob) is False

    def test_present_same_size(self, service, store, spool_dir):
        with self._sealed(spool_dir) as blob:
            service.upload_blob(blob)
            assert service.check_duplicate(blob) is True

    def test_size_mismatch_reuploads(self, service, store, spool_dir, hello_dir):
        first = service.upload_directory(hello_dir)
        (store.inner.base_dir / first.key).write_bytes(b"short")

        again = service.upload_directory(hello_dir)
        assert again.uploaded is True
        assert store.count("put") == 2
        assert store.inner.stat(first.key).size == first.size

    def test_lookup_error_is_not_duplicate(self, service, store, hello_dir):
        service.upload_directory(hello_dir)
        store.fail_stat = StoreError("network unreachable")

        again = service.upload_directory(hello_dir)
        assert again.uploaded is True
        assert store.count("put") == 2

    def test_unexpected_lookup_exception(self, service, store, spool_dir):
        store.fail_stat = ValueError("garbled response")
        with self._sealed(spool_dir) as blob:
            assert service.check_duplicate(blob) is False


class TestUploadFailures:
    """Failures before and during transfer."""

    def test_transfer_failure(self, service, store, spool_dir, hello_dir):
        store.fail_put = True
        with pytest.raises(UploadError) as exc_info:
            service.upload_directory(hello_dir)

        err = exc_info.value
        assert err.digest == _tar_digest(hello_dir)
        assert err.key == object_key(err.digest)
        assert err.digest in str(err)
        assert isinstance(err.__cause__, StoreError)
        assert ("delete", err.key) in store.calls
        with pytest.raises(NotFoundError):
            store.inner.stat(err.key)
        assert list(spool_dir.iterdir()) == []

    def test_transfer_failure_with_delete_failure(self, service, store, spool_dir, hello_dir, caplog):
        store.fail_put = True
        store.fail_delete = True
        with pytest.raises(UploadError, match="connection reset"):
            service.upload_directory(hello_dir)
        assert "Could not remove partial upload" in caplog.text
        assert list(spool_dir.iterdir()) == []

    def test_client_exception_outside_hierarchy(self, service, store, spool_dir, hello_dir, monkeypatch):
        """Errors a store client raises without wrapping still trigger cleanup."""
        monkeypatch.setattr(store, "put", Mock(side_effect=RuntimeError("transfer manager crashed")))

        with pytest.raises(UploadError, match="transfer manager crashed") as exc_info:
            service.upload_directory(hello_dir)

        assert exc_info.value.digest == _tar_digest(hello_dir)
        assert ("delete", exc_info.value.key) in store.calls
        assert list(spool_dir.iterdir()) == []

    def test_transfer_failure_reports_progress_complete(self, service, store, hello_dir):
        store.fail_put = True
        progress = RecordingProgress()
        with pytest.raises(UploadError):
            service.upload_directory(hello_dir, progress=progress)
        assert progress.events[0][0] == "start"
        assert progress.events[-1][0] == "complete"

    def test_packing_failure_never_touches_store(self, service, store, spool_dir, tmp_path):
        with pytest.raises(PackagingError):
            service.upload_directory(tmp_path / "missing")
        assert store.calls == []
        assert list(spool_dir.iterdir()) == []

    def test_flush_failure_never_touches_store(self, service, store, spool_dir, hello_dir, monkeypatch):
        def failing_close(self):
            raise OSError("no space left on device")

        monkeypatch.setattr(CompressionStage, "close", failing_close)
        with pytest.raises(FlushError):
            service.upload_directory(hello_dir)
        assert store.calls == []
        assert list(spool_dir.iterdir()) == []

    def test_spool_allocation_failure(self, store, tmp_path, hello_dir):
        service = BlobService(store, StoreConfig(spool_dir=tmp_path / "gone"))
        with pytest.raises(ResourceAllocationError):
            service.upload_directory(hello_dir)
        assert store.calls == []


class TestProgress:
    def test_events_for_upload(self, service, hello_dir):
        progress = RecordingProgress()
        result = service.upload_directory(hello_dir, progress=progress)

        assert progress.events[0] == ("start", result.key, result.size)
        transferred = [e[2] for e in progress.events if e[0] == "progress"]
        assert transferred[-1] == result.size
        assert progress.events[-1] == ("complete", result.key)

    def test_no_events_for_duplicate(self, service, hello_dir):
        service.upload_directory(hello_dir)
        progress = RecordingProgress()
        service.upload_directory(hello_dir, progress=progress)
        assert progress.events == []


class TestUploadFileAndZip:
    """Single files and zip archives."""

    def test_upload_file(self, service, store, tmp_path):
        path = tmp_path / "weights.bin"
        path.write_bytes(b"\x01\x02" * 10_000)

        result = service.upload_file(path)
        assert result.digest == hashlib.sha256(path.read_bytes()).hexdigest()
        assert result.is_dir is False
        assert result.reference == "weights.bin"
        assert result.uncompressed_size == 20_000
        assert store.inner.stat(result.key).metadata.is_dir is False

    def test_same_content_different_name_dedups(self, service, store, tmp_path):
        (tmp_path / "a.txt").write_text("identical")
        (tmp_path / "b.txt").write_text("identical")
        assert service.upload_file(tmp_path / "a.txt").uploaded is True
        assert service.upload_file(tmp_path / "b.txt").uploaded is False
        assert store.count("put") == 1

    def test_missing_file(self, service, store, tmp_path):
        with pytest.raises(PackagingError):
            service.upload_file(tmp_path / "missing.bin")
        assert store.calls == []

    def test_upload_file_spool_removed(self, service, spool_dir, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("x")
        service.upload_file(path)
        assert list(spool_dir.iterdir()) == []

    def test_upload_zip(self, service, store, tmp_path):
        archive = tmp_path / "bundle.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("model/params.json", json.dumps({"beta": 0.3}))
            zf.writestr("model/README", "hi")

        result = service.upload_zip(archive)
        assert result.is_dir is True
        assert result.reference == "bundle"
        assert service.upload_zip(archive).uploaded is False
        assert store.count("put") == 1


class TestFetch:
    """Download, restore and verify."""

    def test_fetch_directory(self, service, make_tree, tmp_path):
        tree = make_tree("src", {"a.txt": "ay", "sub/b.bin": b"\x00" * 5000})
        (tree / "sub" / "link").symlink_to("b.bin")
        uploaded = service.upload_directory(tree)

        dest = tmp_path / "restored"
        result = service.fetch(uploaded.digest, dest)

        assert result.is_dir is True
        assert result.digest == uploaded.digest
        assert result.size == uploaded.size
        assert result.uncompressed_size == uploaded.uncompressed_size
        assert snapshot_tree(dest) == snapshot_tree(tree)

    def test_fetch_file(self, service, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("a,b\n1,2\n")
        uploaded = service.upload_file(path)

        dest = tmp_path / "out" / "copy.csv"
        result = service.fetch(f"sha256:{uploaded.digest}", dest)
        assert result.is_dir is False
        assert dest.read_text() == "a,b\n1,2\n"

    def test_fetch_zip_upload(self, service, tmp_path):
        archive = tmp_path / "bundle.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("model/params.json", "{}")
        uploaded = service.upload_zip(archive)

        dest = tmp_path / "unzipped"
        service.fetch(uploaded.digest, dest)
        assert (dest / "model" / "params.json").read_text() == "{}"

    def test_fetch_missing(self, service, tmp_path):
        with pytest.raises(NotFoundError):
            service.fetch("ab" * 32, tmp_path / "out")

    def test_fetch_with_garbled_metadata(self, service, store, tmp_path):
        path = tmp_path / "data.txt"
        path.write_text("content")
        uploaded = service.upload_file(path)
        sidecar = store.inner.base_dir / (uploaded.key + ".meta.json")
        sidecar.write_text(json.dumps({"Uncompressed-Size": "lots", "Is-Dir": "false"}))

        dest = tmp_path / "copy.txt"
        result = service.fetch(uploaded.digest, dest)
        assert result.is_dir is False
        assert dest.read_text() == "content"

    def test_fetch_invalid_digest(self, service, store, tmp_path):
        with pytest.raises(ValueError):
            service.fetch("../../etc/passwd", tmp_path / "out")
        assert store.calls == []

    def test_fetch_detects_tampering(self, service, store, spool_dir, tmp_path):
        path = tmp_path / "data.txt"
        path.write_text("original")
        uploaded = service.upload_file(path)
        (store.inner.base_dir / uploaded.key).write_bytes(gzip.compress(b"tampered"))

        with pytest.raises(DigestMismatchError) as exc_info:
            service.fetch(uploaded.digest, tmp_path / "out.txt")
        assert exc_info.value.expected == uploaded.digest
        assert exc_info.value.actual == hashlib.sha256(b"tampered").hexdigest()
        assert list(spool_dir.iterdir()) == []
