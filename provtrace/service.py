"""ProvenanceService: the facade the UI layer talks to.

Wires the coordination layer together from a ``ProdConfig``:

    UploadCoordinator -> StorageClientManager -> SpaceBootstrapper
    ProvenanceLedgerClient -> LedgerNode / TransactionSigner / SessionStore
    ContentResolver -> gateway

and adds the product-level flows of the application: registering a product
together with its metadata document, recording a trace event with its
event metadata, and reading a product back with its metadata and events.

All collaborators are process-scoped objects owned by the service; there is
no module-level client or space state.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict

from provtrace.bridge.ledger import ActorSupplier, LedgerNode, TransactionSigner
from provtrace.bridge.local_ledger import LocalLedgerNode, LocalSigner, ProductLedger
from provtrace.bridge.local_storage import LocalStorageNetwork
from provtrace.bridge.storage import StorageTransport
from provtrace.config import ProdConfig
from provtrace.core.client_manager import StorageClientManager
from provtrace.core.content_resolver import ContentResolver
from provtrace.core.ledger_client import ProvenanceLedgerClient, parse_status
from provtrace.core.production_guard import enforce_production_constraints
from provtrace.core.session import SessionStore
from provtrace.core.space_bootstrapper import SpaceBootstrapper
from provtrace.core.upload_coordinator import UploadCoordinator
from provtrace.errors import (
    AuthorizationError,
    InvalidInputError,
    MetadataFetchError,
    ProductNotFoundError,
)
from provtrace.models.ledger import (
    GeoPoint,
    LedgerInfo,
    Product,
    ProductRegistration,
    TraceEvent,
    TraceStatus,
)
from provtrace.models.session import Actor
from provtrace.models.storage import ClientStatus, UploadFile

logger = logging.getLogger(__name__)

STORAGE_PROVIDER = "Storacha"
DEPLOYMENT_FILE = "deployment.json"
# Signer used against the local ledger when nobody is signed in.
DEV_SIGNER_ADDRESS = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class RegisteredProduct(BaseModel):
    """A product registered together with its metadata document."""

    model_config = ConfigDict(frozen=True)

    registration: ProductRegistration
    metadata_cid: str
    file_cid: str | None = None

    @property
    def product_id(self) -> int:
        return self.registration.product_id


class RecordedEvent(BaseModel):
    """A trace event appended together with its event metadata."""

    model_config = ConfigDict(frozen=True)

    product_id: int
    status: TraceStatus
    tx_ref: str
    metadata_cid: str


class ProductView(BaseModel):
    """A product with its resolved metadata and its event log.

    ``metadata`` is None when the gateway could not serve it; the reason is
    kept in ``metadata_error``.
    """

    model_config = ConfigDict(frozen=True)

    product: Product
    metadata: Any = None
    metadata_error: str | None = None
    events: list[TraceEvent] = []


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ProvenanceService:
    """Process-scoped facade over storage, ledger and gateway.

    Parameters
    ----------
    config:
        Active configuration.  Production constraints are enforced here.
    storage:
        Storage transport used to create the storage client.
    ledger_node / signer:
        Ledger read access and the wallet-backed signer.
    actors:
        Supplies the authenticated actor.
    gateway_transport:
        Optional ``httpx`` transport for the content resolver.
    contract_address:
        Overrides ``config.ledger_contract_address``.
    """

    def __init__(
        self,
        config: ProdConfig,
        *,
        storage: StorageTransport,
        ledger_node: LedgerNode,
        signer: TransactionSigner,
        actors: ActorSupplier | None = None,
        gateway_transport: httpx.AsyncBaseTransport | None = None,
        contract_address: str | None = None,
    ) -> None:
        enforce_production_constraints(config)
        self.config = config
        self._actors = actors

        self.bootstrapper = SpaceBootstrapper(
            space_id=config.storage_space_did,
            email=config.storage_email,
            login_timeout=config.login_timeout_seconds,
            plan_timeout=config.plan_timeout_seconds,
        )
        self.clients = StorageClientManager(storage, self.bootstrapper)
        self.uploads = UploadCoordinator(
            self.clients,
            timeout=config.upload_timeout_seconds,
            retry_delay=config.upload_retry_delay_seconds,
            reassert_delay=config.upload_reassert_delay_seconds,
            max_bytes=config.max_upload_bytes,
        )
        self.ledger = ProvenanceLedgerClient(
            ledger_node,
            signer,
            contract_address=contract_address or config.ledger_contract_address,
            actors=actors,
        )
        self.resolver = ContentResolver(
            config.gateway_url,
            timeout=config.gateway_timeout_seconds,
            transport=gateway_transport,
        )

    @classmethod
    def from_config(cls, config: ProdConfig) -> ProvenanceService:
        """Build a service over the local storage network and local ledger."""
        network = LocalStorageNetwork(config.blob_store_path)
        product_ledger = ProductLedger(
            config.ledger_db_path,
            network_name=config.ledger_network,
            chain_id=config.ledger_chain_id,
        )
        sessions = SessionStore(config.session_path, ttl_hours=config.session_ttl_hours)
        actor = sessions.current_actor()
        signer_address = config.signer_address or (
            actor.address if actor is not None else DEV_SIGNER_ADDRESS
        )
        return cls(
            config,
            storage=network,
            ledger_node=LocalLedgerNode(product_ledger),
            signer=LocalSigner(product_ledger, signer_address),
            actors=sessions,
            gateway_transport=network.gateway_transport() if config.use_local_gateway else None,
            contract_address=config.ledger_contract_address
            or load_deployment(config.data_dir),
        )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def upload(self, file: UploadFile) -> str:
        return await self.uploads.upload(file)

    async def upload_json(self, document: Any, filename: str = "metadata.json") -> str:
        return await self.uploads.upload_json(document, filename)

    async def upload_directory(self, files: list[UploadFile]) -> str:
        return await self.uploads.upload_directory(files)

    def get_client_status(self) -> ClientStatus:
        return self.clients.status()

    def active_upload_count(self) -> int:
        return self.uploads.active_upload_count()

    # ------------------------------------------------------------------
    # Gateway
    # ------------------------------------------------------------------

    async def resolve(self, cid: str) -> Any:
        return await self.resolver.resolve(cid)

    def gateway_url(self, cid: str) -> str:
        return self.resolver.gateway_url(cid)

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    async def register_product(self, metadata_cid: str) -> ProductRegistration:
        return await self.ledger.register_product(metadata_cid)

    async def add_trace_event(
        self,
        product_id: int,
        status: TraceStatus | int | str,
        metadata_cid: str,
        geo: GeoPoint | None = None,
    ) -> str:
        return await self.ledger.add_trace_event(product_id, status, metadata_cid, geo)

    async def get_product(self, product_id: int) -> Product:
        return await self.ledger.get_product(product_id)

    async def get_product_events(self, product_id: int) -> list[TraceEvent]:
        return await self.ledger.get_product_events(product_id)

    async def get_ledger_info(self) -> LedgerInfo:
        return await self.ledger.get_ledger_info()

    # ------------------------------------------------------------------
    # Product flows
    # ------------------------------------------------------------------

    async def register_product_with_metadata(
        self,
        name: str,
        description: str = "",
        origin: str = "",
        file: UploadFile | None = None,
    ) -> RegisteredProduct:
        """Upload the optional file and the product metadata, then register.

        The metadata document is ``{name, description, origin, fileCID,
        storageProvider, timestamp, creator}``.
        """
        if not name or not name.strip():
            raise ValueError("product name is required")
        actor = self._require_actor("registerProduct")

        file_cid = await self.upload(file) if file is not None else None
        metadata = {
            "name": name.strip(),
            "description": description,
            "origin": origin,
            "fileCID": file_cid,
            "storageProvider": STORAGE_PROVIDER,
            "timestamp": _utc_now(),
            "creator": actor.address,
        }
        metadata_cid = await self.upload_json(metadata, "product-metadata.json")
        registration = await self.register_product(metadata_cid)
        logger.info(
            "Product %d (%s) registered with metadata %s",
            registration.product_id,
            name,
            metadata_cid,
        )
        return RegisteredProduct(
            registration=registration, metadata_cid=metadata_cid, file_cid=file_cid
        )

    async def record_trace_event(
        self,
        product_id: int,
        status: TraceStatus | int | str,
        geo: GeoPoint | None = None,
        notes: str = "",
    ) -> RecordedEvent:
        """Upload the event metadata and append the event to the product.

        The metadata document is ``{type, origin: {lat, lng}, creator,
        timestamp}`` plus ``notes`` when given.  The status, the actor and the
        product are checked before anything is uploaded.
        """
        operation = "addTraceEvent"
        parsed = parse_status(status, operation, product_id=product_id)
        actor = self._require_actor(operation)
        try:
            await self.get_product(product_id)
        except ProductNotFoundError as exc:
            raise InvalidInputError(
                f"product {product_id} does not exist",
                operation=operation,
                product_id=product_id,
            ) from exc
        metadata: dict[str, Any] = {
            "type": parsed.name.capitalize(),
            "origin": {"lat": geo.lat, "lng": geo.lng} if geo is not None else None,
            "creator": actor.address,
            "timestamp": _utc_now(),
        }
        if notes:
            metadata["notes"] = notes
        metadata_cid = await self.upload_json(metadata, "event-metadata.json")
        tx_ref = await self.add_trace_event(product_id, parsed, metadata_cid, geo)
        return RecordedEvent(
            product_id=product_id, status=parsed, tx_ref=tx_ref, metadata_cid=metadata_cid
        )

    async def get_product_with_metadata(self, product_id: int) -> ProductView:
        """Read a product, its event log and its resolved metadata."""
        product = await self.get_product(product_id)
        events = await self.get_product_events(product_id)
        try:
            metadata = await self.resolve(product.metadata_cid)
        except MetadataFetchError as exc:
            logger.warning(
                "Metadata %s of product %d unavailable: %s",
                product.metadata_cid,
                product_id,
                exc,
            )
            return ProductView(product=product, metadata_error=str(exc), events=events)
        return ProductView(product=product, metadata=metadata, events=events)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop the storage client and the ledger handle."""
        self.clients.reset()
        self.ledger.reset()

    def _require_actor(self, operation: str) -> Actor:
        actor = self._actors.current_actor() if self._actors is not None else None
        if actor is None or not actor.is_valid:
            raise AuthorizationError(f"{operation} requires an authenticated actor")
        return actor


# ---------------------------------------------------------------------------
# Deployment record
# ---------------------------------------------------------------------------


def save_deployment(data_dir: Path, address: str, network: str) -> Path:
    """Record the deployed contract address for later runs."""
    path = Path(data_dir) / DEPLOYMENT_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(
            {"address": address, "network": network, "deployedAt": _utc_now()}, indent=2
        ),
        encoding="utf-8",
    )
    return path


def load_deployment(data_dir: Path) -> str:
    """Return the recorded contract address, or "" if none was deployed."""
    path = Path(data_dir) / DEPLOYMENT_FILE
    if not path.exists():
        return ""
    try:
        return json.loads(path.read_text(encoding="utf-8")).get("address", "")
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable deployment record %s: %s", path, exc)
        return ""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
