"""Canonical hashing helpers for content addressing and ledger sealing.

CIDs produced here are CIDv1 with the ``raw`` codec and a sha2-256
multihash, base32-encoded (the ``bafkrei...`` form gateways accept).
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any

# CIDv1 header: version 1, raw codec (0x55), sha2-256 (0x12), 32-byte digest
_CID_V1_RAW_SHA256 = bytes([0x01, 0x55, 0x12, 0x20])


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: deterministic, sorted, compact."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_cid(data: bytes) -> str:
    """Return the CIDv1 (raw, sha2-256, base32) of *data*."""
    digest = hashlib.sha256(data).digest()
    encoded = base64.b32encode(_CID_V1_RAW_SHA256 + digest).decode("ascii")
    return "b" + encoded.lower().rstrip("=")


def cid_digest(cid: str) -> str:
    """Extract the sha256 hex digest from a CID produced by ``compute_cid``.

    Raises ``ValueError`` if *cid* is not a base32 CIDv1 raw/sha2-256.
    """
    if not cid.startswith("b"):
        raise ValueError(f"Unsupported CID encoding: {cid!r}")
    body = cid[1:].upper()
    body += "=" * (-len(body) % 8)
    try:
        raw = base64.b32decode(body)
    except ValueError as exc:  # binascii.Error is a ValueError
        raise ValueError(f"Malformed CID: {cid!r}") from exc
    if not raw.startswith(_CID_V1_RAW_SHA256) or len(raw) != 36:
        raise ValueError(f"Unsupported CID layout: {cid!r}")
    return raw[4:].hex()


def compute_entry_hash(entry_dict: dict[str, Any]) -> str:
    """SHA-256 of a ledger record (excluding the entry_hash field itself).

    This is the seal that makes each trace event tamper-evident.
    """
    d = {k: v for k, v in entry_dict.items() if k != "entry_hash"}
    return sha256_hex(canonical_json_bytes(d))


def compute_tx_ref(payload: dict[str, Any]) -> str:
    """Deterministic 0x-prefixed transaction reference for a submission."""
    return "0x" + sha256_hex(canonical_json_bytes(payload))
