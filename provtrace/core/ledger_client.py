"""Provenance ledger client: products and their trace events.

The ledger handle is connected lazily with the same lifecycle as the
storage client (Uninitialized -> Initializing -> Ready).  Connecting checks
that the tracer contract has code at the configured address.

Writes require an authenticated actor, are estimated before submission
(a failed estimate is reported, never submitted blind) and return the
ledger's confirmation reference.  Reads are projections of what the ledger
stored; trace events come back in ledger inclusion order, which is not
necessarily the order the calls were issued in.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from provtrace.bridge.ledger import (
    EMPTY_CODE,
    ActorSupplier,
    ContractRevertError,
    LedgerNode,
    LedgerTransportError,
    TransactionSigner,
)
from provtrace.core.lifecycle import LazyResource
from provtrace.errors import (
    AuthorizationError,
    EstimationFailedError,
    InvalidInputError,
    LedgerError,
    LedgerNotDeployedError,
    ProductNotFoundError,
    TransactionRevertedError,
)
from provtrace.models.ledger import (
    GeoPoint,
    LedgerInfo,
    Product,
    ProductRegistration,
    TraceEvent,
    TraceStatus,
    TxReceipt,
)
from provtrace.models.lifecycle import LifecycleState
from provtrace.models.session import Actor

logger = logging.getLogger(__name__)

PRODUCT_CREATED = "ProductCreated"


class ProvenanceLedgerClient:
    """Registers products, appends trace events and reads them back.

    Parameters
    ----------
    node:
        Read access to the ledger.
    signer:
        Wallet-backed signer used for writes.
    contract_address:
        Address of the tracer contract.
    actors:
        Supplies the authenticated actor.  Without one, writes fail with
        ``AuthorizationError``.
    """

    def __init__(
        self,
        node: LedgerNode,
        signer: TransactionSigner,
        *,
        contract_address: str,
        actors: ActorSupplier | None = None,
    ) -> None:
        self._node = node
        self._signer = signer
        self._address = contract_address
        self._actors = actors
        self._handle: LazyResource[str] = LazyResource(self._connect, name="ledger")

    @property
    def contract_address(self) -> str:
        return self._address

    @property
    def state(self) -> LifecycleState:
        return self._handle.state

    async def connect(self) -> str:
        """Ensure the ledger handle is ready; returns the contract address."""
        return await self._handle.get()

    def reset(self) -> None:
        self._handle.reset()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def register_product(self, metadata_cid: str) -> ProductRegistration:
        """Register a product whose metadata lives at *metadata_cid*."""
        operation = "registerProduct"
        if not isinstance(metadata_cid, str) or not metadata_cid.strip():
            raise InvalidInputError(
                "metadata CID must be a non-empty string",
                operation=operation,
                cid=metadata_cid if isinstance(metadata_cid, str) else None,
            )
        metadata_cid = metadata_cid.strip()
        actor = self._require_actor(operation)
        await self.connect()
        await self._require_deployed(operation, cid=metadata_cid)

        logger.info("Registering product for %s as %s", metadata_cid, actor.address)
        receipt = await self._submit(operation, "createProduct", metadata_cid, cid=metadata_cid)

        record = next(
            (r for r in receipt.emitted_records if r.name == PRODUCT_CREATED), None
        )
        if record is None or "productId" not in record.args:
            raise TransactionRevertedError(
                f"{operation}: confirmation {receipt.tx_ref} carries no {PRODUCT_CREATED} record",
                operation=operation,
                cid=metadata_cid,
            )
        product_id = int(record.args["productId"])
        logger.info("Product %d registered in %s", product_id, receipt.tx_ref)
        return ProductRegistration(
            product_id=product_id,
            tx_ref=receipt.tx_ref,
            block_ref=receipt.block_ref,
            gas_used=receipt.gas_used,
        )

    async def add_trace_event(
        self,
        product_id: int,
        status: TraceStatus | int | str,
        metadata_cid: str,
        geo: GeoPoint | None = None,
    ) -> str:
        """Append a trace event to *product_id*; returns the tx reference."""
        operation = "addTraceEvent"
        product_id = _require_product_id(product_id, operation)
        parsed = parse_status(status, operation, product_id=product_id)
        if not isinstance(metadata_cid, str) or not metadata_cid.strip():
            raise InvalidInputError(
                "metadata CID must be a non-empty string",
                operation=operation,
                product_id=product_id,
            )
        metadata_cid = metadata_cid.strip()
        actor = self._require_actor(operation)
        await self.connect()

        if not await self._product_exists(product_id):
            raise InvalidInputError(
                f"product {product_id} does not exist",
                operation=operation,
                product_id=product_id,
                cid=metadata_cid,
            )

        logger.info(
            "Adding %s event to product %d as %s", parsed.name, product_id, actor.address
        )
        receipt = await self._submit(
            operation,
            "addTraceEvent",
            product_id,
            int(parsed),
            metadata_cid,
            geo.lat if geo is not None else None,
            geo.lng if geo is not None else None,
            product_id=product_id,
            cid=metadata_cid,
        )
        return receipt.tx_ref

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_product(self, product_id: int) -> Product:
        operation = "getProduct"
        product_id = _require_product_id(product_id, operation)
        await self.connect()
        raw = await self._read(operation, "products", product_id, product_id=product_id)
        if not raw or not raw.get("id"):
            raise ProductNotFoundError(
                f"product {product_id} does not exist",
                operation=operation,
                product_id=product_id,
            )
        return Product(
            id=int(raw["id"]),
            metadata_cid=raw["metadataCID"],
            creator_address=raw["creator"],
            created_at=_parse_time(raw.get("createdAt")),
        )

    async def get_product_events(self, product_id: int) -> list[TraceEvent]:
        """Events of *product_id*, oldest first.

        An existing product with no events yields an empty list; an unknown
        product raises ``ProductNotFoundError``.
        """
        operation = "getProductEvents"
        product_id = _require_product_id(product_id, operation)
        await self.connect()
        if not await self._product_exists(product_id):
            raise ProductNotFoundError(
                f"product {product_id} does not exist",
                operation=operation,
                product_id=product_id,
            )
        raw_events = await self._read(
            operation, "getProductEvents", product_id, product_id=product_id
        )
        return [_to_trace_event(product_id, raw) for raw in raw_events or []]

    async def get_ledger_info(self) -> LedgerInfo:
        """Diagnostic snapshot: address, network and signer."""
        try:
            await self.connect()
            network = await self._node.network()
            signer_address = await self._signer.get_address()
        except (LedgerError, LedgerTransportError) as exc:
            logger.warning("Ledger not ready: %s", exc)
            return LedgerInfo(
                is_ready=False, contract_address=self._address, error=str(exc)
            )
        return LedgerInfo(
            is_ready=True,
            contract_address=self._address,
            network_name=network.name,
            chain_id=network.chain_id,
            signer_address=signer_address,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _connect(self) -> str:
        await self._require_deployed("connect")
        network = await self._node.network()
        logger.info(
            "Ledger ready: contract %s on %s (chain %d)",
            self._address,
            network.name,
            network.chain_id,
        )
        return self._address

    async def _require_deployed(self, operation: str, *, cid: str | None = None) -> None:
        try:
            code = await self._node.get_code(self._address)
        except LedgerTransportError as exc:
            raise LedgerNotDeployedError(
                f"{operation}: could not read code at {self._address}: {exc}",
                operation=operation,
                cid=cid,
            ) from exc
        if not code or code == EMPTY_CODE:
            raise LedgerNotDeployedError(
                f"{operation}: no contract deployed at {self._address}",
                operation=operation,
                cid=cid,
            )

    def _require_actor(self, operation: str) -> Actor:
        actor = self._actors.current_actor() if self._actors is not None else None
        if actor is None or not actor.is_valid or not actor.address:
            raise AuthorizationError(f"{operation} requires an authenticated actor")
        return actor

    async def _product_exists(self, product_id: int) -> bool:
        raw = await self._read(
            "products", "products", product_id, product_id=product_id
        )
        return bool(raw and raw.get("id"))

    async def _submit(
        self,
        operation: str,
        function: str,
        *args: Any,
        product_id: int | None = None,
        cid: str | None = None,
    ) -> TxReceipt:
        try:
            gas = await self._signer.estimate_gas(self._address, function, *args)
        except LedgerTransportError as exc:
            logger.error("%s: estimation failed: %s", operation, exc)
            raise EstimationFailedError(
                f"{operation}: cost estimation failed: {exc}",
                operation=operation,
                product_id=product_id,
                cid=cid,
            ) from exc
        logger.debug("%s: estimated %d gas", operation, gas)

        try:
            receipt = await self._signer.send_transaction(self._address, function, *args)
        except ContractRevertError as exc:
            raise TransactionRevertedError(
                f"{operation}: {exc}", operation=operation, product_id=product_id, cid=cid
            ) from exc
        except LedgerTransportError as exc:
            raise TransactionRevertedError(
                f"{operation}: submission failed: {exc}",
                operation=operation,
                product_id=product_id,
                cid=cid,
            ) from exc

        if not receipt.succeeded:
            raise TransactionRevertedError(
                f"{operation}: transaction {receipt.tx_ref} reverted",
                operation=operation,
                product_id=product_id,
                cid=cid,
            )
        logger.info("%s confirmed: %s (block %d)", operation, receipt.tx_ref, receipt.block_ref)
        return receipt

    async def _read(
        self, operation: str, function: str, *args: Any, product_id: int | None = None
    ) -> Any:
        try:
            return await self._node.call(self._address, function, *args)
        except ContractRevertError as exc:
            raise TransactionRevertedError(
                f"{operation}: {exc}", operation=operation, product_id=product_id
            ) from exc
        except LedgerTransportError as exc:
            raise LedgerError(
                f"{operation}: ledger read failed: {exc}",
                operation=operation,
                product_id=product_id,
            ) from exc


def parse_status(
    status: Any, operation: str, *, product_id: int | None = None
) -> TraceStatus:
    """Parse a status name or ordinal, raising ``InvalidInputError`` if unknown."""
    try:
        return TraceStatus.parse(status)
    except ValueError as exc:
        raise InvalidInputError(
            f"status must be one of {[s.name for s in TraceStatus]}, got {status!r}",
            operation=operation,
            product_id=product_id,
        ) from exc


def _require_product_id(product_id: Any, operation: str) -> int:
    if isinstance(product_id, bool):
        product_id = None
    if isinstance(product_id, str) and product_id.strip().isdigit():
        product_id = int(product_id.strip())
    if not isinstance(product_id, int) or product_id <= 0:
        raise InvalidInputError(
            f"product id must be a positive integer, got {product_id!r}",
            operation=operation,
        )
    return product_id


def _parse_time(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value).astimezone()
    return datetime.fromisoformat(str(value))


def _to_trace_event(product_id: int, raw: dict[str, Any]) -> TraceEvent:
    lat, lng = raw.get("lat"), raw.get("lng")
    return TraceEvent(
        product_id=int(raw.get("productId", product_id)),
        status=TraceStatus(int(raw["status"])),
        metadata_cid=raw["metadataCID"],
        actor_address=raw["actor"],
        timestamp=_parse_time(raw["timestamp"]),
        geo=GeoPoint(lat=lat, lng=lng) if lat is not None and lng is not None else None,
        tx_ref=raw.get("txRef", ""),
        block_ref=raw.get("blockNumber"),
    )
