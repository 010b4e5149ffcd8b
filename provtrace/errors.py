"""Error taxonomy for the provtrace coordination layer.

Every failure the core surfaces is a subclass of ``ProvtraceError``.  Callers
dispatch on the exception class (or its ``kind``), never on message text:

- ``StorageInitError`` / ``SpaceBootstrapError``: storage client setup.
- ``UploadError``: one logical upload failed (timeout, permission, network,
  invalid file).
- ``LedgerError``: ledger command or read failed.
- ``MetadataFetchError``: gateway fetch of a CID failed.
- ``AuthorizationError``: a write needs an authenticated actor.

Ledger and metadata errors carry the operation and the CID / product id
involved so the UI layer can translate them for the user.
"""

from __future__ import annotations

from enum import Enum


class ProvtraceError(RuntimeError):
    """Base class for every error raised by provtrace."""


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageInitError(ProvtraceError):
    """Raised when the storage client could not be created.

    Fatal until the client manager is explicitly reset or retried.
    """


class SpaceBootstrapError(StorageInitError):
    """Raised when no storage space could be established (all tiers failed)."""


class UploadErrorKind(str, Enum):
    """Why an upload failed."""

    TIMEOUT = "timeout"
    PERMISSION_DENIED = "permission_denied"
    NETWORK = "network"
    INVALID_FILE = "invalid_file"


class UploadError(ProvtraceError):
    """Raised when an upload could not produce a CID."""

    kind: UploadErrorKind = UploadErrorKind.NETWORK

    def __init__(self, message: str, *, file_name: str = "", attempts: int = 0) -> None:
        super().__init__(message)
        self.file_name = file_name
        self.attempts = attempts


class UploadTimeoutError(UploadError):
    """The transfer did not finish within the upload budget."""

    kind = UploadErrorKind.TIMEOUT


class UploadPermissionDeniedError(UploadError):
    """The space kept refusing writes after the retry budget was spent."""

    kind = UploadErrorKind.PERMISSION_DENIED


class UploadNetworkError(UploadError):
    """The storage transport failed for a reason other than permissions."""

    kind = UploadErrorKind.NETWORK


class UploadInvalidFileError(UploadError):
    """The file was rejected before any transfer was started."""

    kind = UploadErrorKind.INVALID_FILE


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class LedgerErrorKind(str, Enum):
    """Why a ledger operation failed."""

    NOT_DEPLOYED = "not_deployed"
    ESTIMATION_FAILED = "estimation_failed"
    REVERTED = "reverted"
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"


class LedgerError(ProvtraceError):
    """Raised when a ledger command or read fails."""

    kind: LedgerErrorKind = LedgerErrorKind.REVERTED

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        product_id: int | None = None,
        cid: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.product_id = product_id
        self.cid = cid


class LedgerNotDeployedError(LedgerError):
    """The configured contract address has no deployed code."""

    kind = LedgerErrorKind.NOT_DEPLOYED


class EstimationFailedError(LedgerError):
    """The pre-flight cost estimation rejected the operation."""

    kind = LedgerErrorKind.ESTIMATION_FAILED


class TransactionRevertedError(LedgerError):
    """The ledger accepted the submission but the operation reverted."""

    kind = LedgerErrorKind.REVERTED


class InvalidInputError(LedgerError):
    """An argument was rejected before anything was submitted."""

    kind = LedgerErrorKind.INVALID_INPUT


class ProductNotFoundError(LedgerError):
    """No product is registered under the requested id."""

    kind = LedgerErrorKind.NOT_FOUND


# ---------------------------------------------------------------------------
# Metadata gateway
# ---------------------------------------------------------------------------


class MetadataErrorKind(str, Enum):
    """Why a metadata fetch failed."""

    NOT_FOUND = "not_found"
    MALFORMED = "malformed"
    NETWORK = "network"
    INVALID_INPUT = "invalid_input"


class MetadataFetchError(ProvtraceError):
    """Raised when a CID could not be resolved to a JSON document."""

    kind: MetadataErrorKind = MetadataErrorKind.NETWORK

    def __init__(
        self,
        message: str,
        *,
        cid: str = "",
        status_code: int | None = None,
        kind: MetadataErrorKind | None = None,
    ) -> None:
        super().__init__(message)
        self.cid = cid
        self.status_code = status_code
        if kind is not None:
            self.kind = kind


class MetadataNotFoundError(MetadataFetchError):
    """The gateway answered with a non-success status."""

    kind = MetadataErrorKind.NOT_FOUND


class MetadataMalformedError(MetadataFetchError):
    """The gateway body is not valid JSON."""

    kind = MetadataErrorKind.MALFORMED


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class AuthorizationError(ProvtraceError):
    """Raised when a write requires an authenticated actor and none is valid."""
