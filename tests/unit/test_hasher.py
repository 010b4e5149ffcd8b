"""Tests for the hashing helpers: CIDv1 encoding and ledger seals."""

from __future__ import annotations

import pytest

from provtrace.core.hasher import (
    canonical_json_bytes,
    cid_digest,
    compute_cid,
    compute_entry_hash,
    compute_tx_ref,
    sha256_hex,
)

EMPTY_CID = "bafkreihdwdcefgh4dqkjv67uzcmw7ojee6xedzdetojuzjevtenxquvyku"


class TestComputeCid:
    def test_known_cid_of_empty_block(self):
        assert compute_cid(b"") == EMPTY_CID

    def test_raw_sha256_prefix(self):
        assert compute_cid(b"hello").startswith("bafkrei")

    def test_lowercase_without_padding(self):
        cid = compute_cid(b"some bytes")
        assert cid == cid.lower()
        assert "=" not in cid

    def test_deterministic(self):
        assert compute_cid(b"abc") == compute_cid(b"abc")
        assert compute_cid(b"abc") != compute_cid(b"abd")


class TestCidDigest:
    def test_digest_matches_sha256(self):
        data = b"provenance"
        assert cid_digest(compute_cid(data)) == sha256_hex(data)

    def test_rejects_other_multibase(self):
        with pytest.raises(ValueError):
            cid_digest("QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG")

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            cid_digest("b!!!not-base32")

    def test_rejects_wrong_layout(self):
        with pytest.raises(ValueError):
            cid_digest("baaaa")


class TestSeals:
    def test_canonical_json_is_sorted_and_compact(self):
        assert canonical_json_bytes({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'

    def test_entry_hash_ignores_entry_hash_field(self):
        fields = {"product_id": 1, "status": 0}
        sealed = dict(fields, entry_hash="whatever")
        assert compute_entry_hash(fields) == compute_entry_hash(sealed)

    def test_tx_ref_is_0x_prefixed_sha256(self):
        ref = compute_tx_ref({"function": "createProduct"})
        assert ref.startswith("0x")
        assert len(ref) == 66
