"""provtrace data models: Pydantic v2, frozen where the data is immutable."""

from provtrace.models.ledger import (
    EmittedRecord,
    GeoPoint,
    LedgerInfo,
    Product,
    ProductRegistration,
    TraceEvent,
    TraceStatus,
    TxReceipt,
)
from provtrace.models.lifecycle import VALID_TRANSITIONS, LifecycleState
from provtrace.models.session import Actor, AuthSession, normalize_address
from provtrace.models.storage import (
    ClientStatus,
    Space,
    SpaceTier,
    UploadFile,
    UploadState,
    UploadTask,
)

__all__ = [
    # lifecycle
    "LifecycleState",
    "VALID_TRANSITIONS",
    # storage
    "Space",
    "SpaceTier",
    "UploadFile",
    "UploadState",
    "UploadTask",
    "ClientStatus",
    # ledger
    "TraceStatus",
    "GeoPoint",
    "Product",
    "TraceEvent",
    "EmittedRecord",
    "TxReceipt",
    "ProductRegistration",
    "LedgerInfo",
    # session
    "Actor",
    "AuthSession",
    "normalize_address",
]
