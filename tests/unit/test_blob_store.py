"""Tests for the BlobStore: immutable, CID-addressed, idempotent."""

from __future__ import annotations

from pathlib import Path

import pytest

from provtrace.bridge.blob_store import BlobStore
from provtrace.core.hasher import cid_digest


class TestBlobStore:
    @pytest.fixture
    def store(self, tmp_dir: Path) -> BlobStore:
        return BlobStore(tmp_dir / "blobs")

    def test_put_and_get(self, store: BlobStore):
        cid = store.put(b"product photo")
        assert store.get(cid) == b"product photo"

    def test_put_is_idempotent(self, store: BlobStore):
        assert store.put(b"same") == store.put(b"same")

    def test_layout_on_disk(self, store: BlobStore):
        cid = store.put(b"layout")
        digest = cid_digest(cid)
        assert (store.base_path / digest[:2] / digest[2:4] / f"{digest}.dat").exists()

    def test_get_unknown_raises(self, store: BlobStore):
        with pytest.raises(FileNotFoundError):
            store.get("bafkreihdwdcefgh4dqkjv67uzcmw7ojee6xedzdetojuzjevtenxquvyku")

    def test_get_unparseable_raises(self, store: BlobStore):
        with pytest.raises(FileNotFoundError):
            store.get("not-a-cid")

    def test_exists(self, store: BlobStore):
        cid = store.put(b"x")
        assert store.exists(cid)
        assert not store.exists("not-a-cid")

    def test_verify_detects_tampering(self, store: BlobStore):
        cid = store.put(b"original")
        digest = cid_digest(cid)
        path = store.base_path / digest[:2] / digest[2:4] / f"{digest}.dat"
        path.write_bytes(b"tampered")
        assert store.verify(cid) is False
