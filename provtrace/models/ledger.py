"""Ledger projections: products, trace events, receipts.

Products and trace events are owned by the ledger.  These models are
read-only projections of what the ledger stored; the core never mutates
them.
"""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TraceStatus(IntEnum):
    """Lifecycle stages a product can be traced through.

    The integer values are the ones recorded on the ledger.
    """

    CREATED = 0
    HARVESTED = 1
    PROCESSED = 2
    SHIPPED = 3
    DELIVERED = 4

    @classmethod
    def parse(cls, value: Any) -> TraceStatus:
        """Accept a TraceStatus, its ordinal, or its name (any case).

        Raises ``ValueError`` for anything outside the five statuses.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid trace status: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls(int(text))
            try:
                return cls[text.upper()]
            except KeyError:
                pass
        raise ValueError(f"Invalid trace status: {value!r}")


class GeoPoint(BaseModel):
    """Where an event happened."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class Product(BaseModel):
    """A registered item on the ledger."""

    model_config = ConfigDict(frozen=True)

    id: int
    metadata_cid: str
    creator_address: str
    created_at: datetime | None = None


class TraceEvent(BaseModel):
    """One lifecycle event for a product, in ledger inclusion order."""

    model_config = ConfigDict(frozen=True)

    product_id: int
    status: TraceStatus
    metadata_cid: str
    actor_address: str
    timestamp: datetime
    geo: GeoPoint | None = None
    tx_ref: str = ""
    block_ref: int | None = None


class EmittedRecord(BaseModel):
    """A record (log) emitted by a confirmed operation."""

    model_config = ConfigDict(frozen=True)

    name: str
    args: dict[str, Any] = {}


class TxReceipt(BaseModel):
    """Confirmation details returned by the transaction signer."""

    model_config = ConfigDict(frozen=True)

    tx_ref: str
    block_ref: int
    emitted_records: list[EmittedRecord] = []
    gas_used: int = 0
    succeeded: bool = True


class ProductRegistration(BaseModel):
    """Result of registering a product."""

    model_config = ConfigDict(frozen=True)

    product_id: int
    tx_ref: str
    block_ref: int | None = None
    gas_used: int = 0


class LedgerInfo(BaseModel):
    """Diagnostic snapshot of the ledger connection."""

    model_config = ConfigDict(frozen=True)

    is_ready: bool
    contract_address: str = ""
    network_name: str = ""
    chain_id: int | None = None
    signer_address: str | None = None
    error: str | None = None
