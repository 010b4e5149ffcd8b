"""Content-addressed, immutable blob store.

Storage layout: {base_path}/{sha256[0:2]}/{sha256[2:4]}/{sha256}.dat
Blobs are addressed by CIDv1 (raw, sha2-256).  No delete method: blobs are
immutable once stored.
"""

from __future__ import annotations

from pathlib import Path

from provtrace.core.hasher import cid_digest, compute_cid, sha256_hex


class BlobIntegrityError(RuntimeError):
    """Raised when a stored blob's hash does not match its CID."""


class BlobStore:
    """CID keyed, immutable blob store.

    Storing the same content twice is a no-op (idempotent).  There is no
    update or delete.

    Parameters
    ----------
    base_path:
        Root directory for blob storage.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    def _blob_path(self, digest: str) -> Path:
        return self._base / digest[:2] / digest[2:4] / f"{digest}.dat"

    def _path_for_cid(self, cid: str) -> Path | None:
        try:
            return self._blob_path(cid_digest(cid))
        except ValueError:
            return None

    # ------------------------------------------------------------------
    # Store / retrieve
    # ------------------------------------------------------------------

    def put(self, data: bytes) -> str:
        """Store *data* and return its CID.

        If the content already exists, verifies integrity instead of
        overwriting.
        """
        cid = compute_cid(data)
        path = self._blob_path(sha256_hex(data))
        if path.exists():
            if not self.verify(cid):
                raise BlobIntegrityError(f"Existing blob at {cid} failed integrity check")
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_bytes(data)
            tmp.replace(path)
        return cid

    def get(self, cid: str) -> bytes:
        """Return the bytes stored under *cid*.

        Raises ``FileNotFoundError`` for unknown or unparseable CIDs.
        """
        path = self._path_for_cid(cid)
        if path is None or not path.exists():
            raise FileNotFoundError(f"Blob not found: {cid}")
        return path.read_bytes()

    def exists(self, cid: str) -> bool:
        path = self._path_for_cid(cid)
        return path is not None and path.exists()

    def verify(self, cid: str) -> bool:
        """Re-hash stored data and compare against the CID."""
        path = self._path_for_cid(cid)
        if path is None or not path.exists():
            return False
        return compute_cid(path.read_bytes()) == cid
