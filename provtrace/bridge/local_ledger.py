"""Append-only product tracer ledger backed by SQLite.

Implements the product tracer contract locally so provtrace can run without
a chain node:

- Append-only: products and trace events are inserted, never updated or
  deleted.
- Per-product hash chain: each event records the hash of the previous event
  for the same product, so ``verify_chain`` detects tampering.
- Inclusion order: every submission is mined in its own block; events are
  read back in block order.
- Contract semantics: ``addTraceEvent`` reverts for unknown products and
  statuses outside 0..4; ``createProduct`` reverts for an empty CID.

``LocalLedgerNode`` and ``LocalSigner`` expose the ledger through the async
``LedgerNode`` / ``TransactionSigner`` protocols; SQLite work runs in a
worker thread.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from provtrace.bridge.ledger import EMPTY_CODE, ContractRevertError, NetworkInfo
from provtrace.core.hasher import canonical_json_bytes, compute_entry_hash, compute_tx_ref
from provtrace.models.ledger import EmittedRecord, TraceStatus, TxReceipt
from provtrace.models.session import normalize_address

# Marker bytecode reported for deployed tracer contracts.
TRACER_CODE = "0x6080604052"

_BASE_GAS = 21_000
_GAS_PER_BYTE = 68
# Largest id SQLite can bind; anything above reads as an unset slot.
_MAX_ROW_ID = 2**63 - 1


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_DEPLOYMENTS = """
CREATE TABLE IF NOT EXISTS deployments (
    address       TEXT PRIMARY KEY,
    deployer      TEXT NOT NULL,
    deployed_at   TEXT NOT NULL
);
"""

_CREATE_BLOCKS = """
CREATE TABLE IF NOT EXISTS blocks (
    number        INTEGER PRIMARY KEY AUTOINCREMENT,
    tx_ref        TEXT NOT NULL UNIQUE,
    timestamp_utc TEXT NOT NULL
);
"""

_CREATE_PRODUCTS = """
CREATE TABLE IF NOT EXISTS products (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    metadata_cid  TEXT NOT NULL,
    creator       TEXT NOT NULL,
    created_at    TEXT NOT NULL,
    block_number  INTEGER NOT NULL
);
"""

_CREATE_EVENTS = """
CREATE TABLE IF NOT EXISTS trace_events (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id          INTEGER NOT NULL REFERENCES products(id),
    status              INTEGER NOT NULL,
    metadata_cid        TEXT NOT NULL,
    actor               TEXT NOT NULL,
    timestamp_utc       TEXT NOT NULL,
    lat                 REAL,
    lng                 REAL,
    tx_ref              TEXT NOT NULL UNIQUE,
    block_number        INTEGER NOT NULL,
    previous_event_hash TEXT NOT NULL DEFAULT '',
    event_hash          TEXT NOT NULL UNIQUE
);
"""

_CREATE_IDX_EVENTS = """
CREATE INDEX IF NOT EXISTS idx_events_product ON trace_events(product_id, block_number);
"""


class LedgerIntegrityError(RuntimeError):
    """Raised when a product's event hash chain is broken."""


class ProductLedger:
    """SQLite product tracer.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    network_name / chain_id:
        Identity reported to clients.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        network_name: str = "local",
        chain_id: int = 31337,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self.network = NetworkInfo(name=network_name, chain_id=chain_id)
        self._write_lock = threading.Lock()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(_CREATE_DEPLOYMENTS)
            conn.execute(_CREATE_BLOCKS)
            conn.execute(_CREATE_PRODUCTS)
            conn.execute(_CREATE_EVENTS)
            conn.execute(_CREATE_IDX_EVENTS)
            conn.commit()

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    def deploy(self, deployer: str = "") -> str:
        """Deploy a tracer contract and return its address."""
        address = "0x" + uuid.uuid4().hex + uuid.uuid4().hex[:8]
        with self._write_lock, self._connect() as conn:
            conn.execute(
                "INSERT INTO deployments (address, deployer, deployed_at) VALUES (?, ?, ?)",
                (address, normalize_address(deployer), _now().isoformat()),
            )
            conn.commit()
        return address

    def get_code(self, address: str) -> str:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM deployments WHERE address = ?",
                (normalize_address(address),),
            ).fetchone()
        return TRACER_CODE if row else EMPTY_CODE

    # ------------------------------------------------------------------
    # Writes: estimate, then execute
    # ------------------------------------------------------------------

    def estimate(self, address: str, function: str, args: tuple, sender: str) -> int:
        """Dry-run *function*; raise ``ContractRevertError`` if it would revert."""
        with self._connect() as conn:
            self._require_deployed(conn, address)
            self._validate(conn, function, args)
        payload = canonical_json_bytes([function, list(args), normalize_address(sender)])
        return _BASE_GAS + _GAS_PER_BYTE * len(payload)

    def execute(self, address: str, function: str, args: tuple, sender: str) -> TxReceipt:
        """Mine *function* in a new block and return its receipt."""
        sender = normalize_address(sender)
        gas = self.estimate(address, function, args, sender)
        with self._write_lock, self._connect() as conn:
            self._require_deployed(conn, address)
            self._validate(conn, function, args)
            timestamp = _now()
            tx_ref = compute_tx_ref(
                {
                    "to": normalize_address(address),
                    "function": function,
                    "args": list(args),
                    "from": sender,
                    "nonce": uuid.uuid4().hex,
                }
            )
            block = conn.execute(
                "INSERT INTO blocks (tx_ref, timestamp_utc) VALUES (?, ?)",
                (tx_ref, timestamp.isoformat()),
            ).lastrowid

            if function == "createProduct":
                record = self._insert_product(conn, args, sender, timestamp, block)
            else:
                record = self._insert_event(conn, args, sender, timestamp, tx_ref, block)
            conn.commit()

        return TxReceipt(
            tx_ref=tx_ref,
            block_ref=block,
            emitted_records=[record],
            gas_used=gas,
        )

    def _insert_product(
        self,
        conn: sqlite3.Connection,
        args: tuple,
        sender: str,
        timestamp: datetime,
        block: int,
    ) -> EmittedRecord:
        (metadata_cid,) = args
        product_id = conn.execute(
            "INSERT INTO products (metadata_cid, creator, created_at, block_number) "
            "VALUES (?, ?, ?, ?)",
            (metadata_cid, sender, timestamp.isoformat(), block),
        ).lastrowid
        return EmittedRecord(
            name="ProductCreated",
            args={"productId": product_id, "creator": sender, "metadataCID": metadata_cid},
        )

    def _insert_event(
        self,
        conn: sqlite3.Connection,
        args: tuple,
        sender: str,
        timestamp: datetime,
        tx_ref: str,
        block: int,
    ) -> EmittedRecord:
        product_id, status, metadata_cid, lat, lng = args
        lat = float(lat) if lat is not None else None
        lng = float(lng) if lng is not None else None
        row = conn.execute(
            "SELECT event_hash FROM trace_events WHERE product_id = ? "
            "ORDER BY block_number DESC LIMIT 1",
            (product_id,),
        ).fetchone()
        previous_hash = row["event_hash"] if row else ""
        fields = {
            "product_id": product_id,
            "status": int(status),
            "metadata_cid": metadata_cid,
            "actor": sender,
            "timestamp_utc": timestamp.isoformat(),
            "lat": lat,
            "lng": lng,
            "tx_ref": tx_ref,
            "block_number": block,
            "previous_event_hash": previous_hash,
        }
        fields["event_hash"] = compute_entry_hash(fields)
        conn.execute(
            """
            INSERT INTO trace_events
                (product_id, status, metadata_cid, actor, timestamp_utc, lat, lng,
                 tx_ref, block_number, previous_event_hash, event_hash)
            VALUES (:product_id, :status, :metadata_cid, :actor, :timestamp_utc, :lat, :lng,
                    :tx_ref, :block_number, :previous_event_hash, :event_hash)
            """,
            fields,
        )
        return EmittedRecord(
            name="TraceEventAdded",
            args={
                "productId": product_id,
                "status": int(status),
                "metadataCID": metadata_cid,
                "actor": sender,
            },
        )

    def _require_deployed(self, conn: sqlite3.Connection, address: str) -> None:
        row = conn.execute(
            "SELECT 1 FROM deployments WHERE address = ?",
            (normalize_address(address),),
        ).fetchone()
        if row is None:
            raise ContractRevertError(f"no contract code at {address}")

    def _validate(self, conn: sqlite3.Connection, function: str, args: tuple) -> None:
        if function == "createProduct":
            if len(args) != 1 or not isinstance(args[0], str) or not args[0]:
                raise ContractRevertError("metadataCID required")
        elif function == "addTraceEvent":
            if len(args) != 5:
                raise ContractRevertError("addTraceEvent expects 5 arguments")
            product_id, status, metadata_cid, _, _ = args
            if not self._product_row(conn, product_id):
                raise ContractRevertError("Product does not exist")
            if not isinstance(status, int) or status not in {s.value for s in TraceStatus}:
                raise ContractRevertError("Invalid status")
            if not isinstance(metadata_cid, str) or not metadata_cid:
                raise ContractRevertError("metadataCID required")
        else:
            raise ContractRevertError(f"unknown function {function}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read(self, address: str, function: str, args: tuple) -> Any:
        """Execute a read-only contract function."""
        with self._connect() as conn:
            self._require_deployed(conn, address)
            if function == "products":
                (product_id,) = args
                row = self._product_row(conn, product_id)
                if row is None:
                    # Unset mapping slots read back as a zero record.
                    return {"id": 0, "metadataCID": "", "creator": "", "createdAt": ""}
                return {
                    "id": row["id"],
                    "metadataCID": row["metadata_cid"],
                    "creator": row["creator"],
                    "createdAt": row["created_at"],
                }
            if function == "getProductEvents":
                (product_id,) = args
                if not _valid_row_id(product_id):
                    return []
                rows = conn.execute(
                    "SELECT * FROM trace_events WHERE product_id = ? ORDER BY block_number ASC",
                    (product_id,),
                ).fetchall()
                return [_event_row_to_dict(row) for row in rows]
            if function == "productCount":
                row = conn.execute("SELECT COUNT(*) AS n FROM products").fetchone()
                return row["n"]
        raise ContractRevertError(f"unknown function {function}")

    def _product_row(self, conn: sqlite3.Connection, product_id: Any) -> sqlite3.Row | None:
        if not _valid_row_id(product_id):
            return None
        return conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()

    # ------------------------------------------------------------------
    # Chain verification
    # ------------------------------------------------------------------

    def verify_chain(self, product_id: int) -> bool:
        """Verify the event hash chain for a product.

        Returns True if the chain is valid, raises LedgerIntegrityError otherwise.
        """
        if not _valid_row_id(product_id):
            return True
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM trace_events WHERE product_id = ? ORDER BY block_number ASC",
                (product_id,),
            ).fetchall()

        prev_hash = ""
        for row in rows:
            fields = {key: row[key] for key in row.keys() if key not in ("id", "event_hash")}
            if fields["previous_event_hash"] != prev_hash:
                raise LedgerIntegrityError(
                    f"Chain broken at tx {row['tx_ref']}: "
                    f"expected previous_hash={prev_hash!r}, "
                    f"got {fields['previous_event_hash']!r}"
                )
            expected = compute_entry_hash(fields)
            if row["event_hash"] != expected:
                raise LedgerIntegrityError(
                    f"Tampered event {row['tx_ref']}: "
                    f"expected hash={expected!r}, got {row['event_hash']!r}"
                )
            prev_hash = row["event_hash"]
        return True


# ---------------------------------------------------------------------------
# Async protocol adapters
# ---------------------------------------------------------------------------


class LocalLedgerNode:
    """``LedgerNode`` over a ``ProductLedger``."""

    def __init__(self, ledger: ProductLedger) -> None:
        self._ledger = ledger

    async def get_code(self, address: str) -> str:
        return await asyncio.to_thread(self._ledger.get_code, address)

    async def call(self, address: str, function: str, *args: Any) -> Any:
        return await asyncio.to_thread(self._ledger.read, address, function, args)

    async def network(self) -> NetworkInfo:
        return self._ledger.network


class LocalSigner:
    """``TransactionSigner`` submitting to a ``ProductLedger`` as *address*."""

    def __init__(self, ledger: ProductLedger, address: str) -> None:
        self._ledger = ledger
        self._address = normalize_address(address)

    async def get_address(self) -> str:
        return self._address

    async def estimate_gas(self, address: str, function: str, *args: Any) -> int:
        return await asyncio.to_thread(
            self._ledger.estimate, address, function, args, self._address
        )

    async def send_transaction(self, address: str, function: str, *args: Any) -> TxReceipt:
        return await asyncio.to_thread(
            self._ledger.execute, address, function, args, self._address
        )


def _event_row_to_dict(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "productId": row["product_id"],
        "status": row["status"],
        "metadataCID": row["metadata_cid"],
        "actor": row["actor"],
        "timestamp": row["timestamp_utc"],
        "lat": row["lat"],
        "lng": row["lng"],
        "txRef": row["tx_ref"],
        "blockNumber": row["block_number"],
    }


def _valid_row_id(value: Any) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 < value <= _MAX_ROW_ID
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)
