"""Ledger boundary: node reads, wallet-backed signing, actor supply.

Bridge boundary
---------------
The ledger's execution semantics are opaque to provtrace.  The ledger
client reaches it through three collaborators:

``LedgerNode``
    Read access: deployed code at an address, read-only contract calls and
    network identity.
``TransactionSigner``
    The wallet.  Estimates and submits operations and returns confirmation
    receipts (``TxReceipt``).
``ActorSupplier``
    The login collaborator.  Yields the authenticated actor, if any.

Operations are named after the product tracer contract:
``createProduct(metadataCID)``, ``addTraceEvent(productId, status,
metadataCID, lat, lng)``, ``products(productId)``,
``getProductEvents(productId)`` and ``productCount()``.

``provtrace.bridge.local_ledger`` ships a SQLite-backed implementation.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from provtrace.models.ledger import TxReceipt
from provtrace.models.session import Actor

# Code returned for an address with no deployed contract.
EMPTY_CODE = "0x"


class LedgerTransportError(RuntimeError):
    """Raised when the node or signer cannot complete a request."""


class ContractRevertError(LedgerTransportError):
    """Raised when the contract rejects an operation (estimate or submit)."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"execution reverted: {reason}")
        self.reason = reason


class NetworkInfo(BaseModel):
    """Identity of the network a node is connected to."""

    model_config = ConfigDict(frozen=True)

    name: str
    chain_id: int


@runtime_checkable
class LedgerNode(Protocol):
    """Read-only access to the ledger."""

    async def get_code(self, address: str) -> str: ...

    async def call(self, address: str, function: str, *args: Any) -> Any: ...

    async def network(self) -> NetworkInfo: ...


@runtime_checkable
class TransactionSigner(Protocol):
    """Wallet-backed signer submitting operations on behalf of the actor."""

    async def get_address(self) -> str: ...

    async def estimate_gas(self, address: str, function: str, *args: Any) -> int: ...

    async def send_transaction(self, address: str, function: str, *args: Any) -> TxReceipt:
        """Submit and wait for confirmation."""
        ...


@runtime_checkable
class ActorSupplier(Protocol):
    """Supplies the authenticated actor, or None when nobody is signed in."""

    def current_actor(self) -> Actor | None: ...
