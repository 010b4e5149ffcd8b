"""Shared test fixtures for provtrace."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from provtrace.bridge.local_ledger import LocalLedgerNode, LocalSigner, ProductLedger
from provtrace.bridge.local_storage import LocalStorageNetwork
from provtrace.config import ProdConfig
from provtrace.core.client_manager import StorageClientManager
from provtrace.core.ledger_client import ProvenanceLedgerClient
from provtrace.core.session import SessionStore
from provtrace.core.space_bootstrapper import SpaceBootstrapper
from provtrace.core.upload_coordinator import UploadCoordinator
from provtrace.models.session import Actor
from provtrace.models.storage import Space, UploadFile
from provtrace.service import ProvenanceService, save_deployment

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20


class StaticActors:
    """ActorSupplier returning a fixed actor (or nobody)."""

    def __init__(self, address: str | None = ALICE) -> None:
        self.actor = Actor(address=address) if address else None

    def current_actor(self) -> Actor | None:
        return self.actor


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test data."""
    return tmp_path


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture
def network(tmp_dir: Path) -> LocalStorageNetwork:
    """Provide a fresh in-process storage network."""
    return LocalStorageNetwork(tmp_dir / "blobs")


@pytest.fixture
def bootstrapper() -> SpaceBootstrapper:
    """Bootstrapper with nothing configured: always lands on the local tier."""
    return SpaceBootstrapper(login_timeout=0.5, plan_timeout=0.5)


@pytest.fixture
def client_manager(
    network: LocalStorageNetwork, bootstrapper: SpaceBootstrapper
) -> StorageClientManager:
    return StorageClientManager(network, bootstrapper)


@pytest.fixture
def coordinator(client_manager: StorageClientManager) -> UploadCoordinator:
    """Upload coordinator with short delays."""
    return UploadCoordinator(
        client_manager, timeout=2.0, retry_delay=0.01, reassert_delay=0.01
    )


@pytest.fixture
def make_file() -> Callable[..., UploadFile]:
    """Factory fixture: build an UploadFile with sensible defaults."""

    def _factory(
        name: str = "photo.jpg",
        data: bytes = b"\xff\xd8\xff\xe0 fake jpeg body",
        content_type: str = "image/jpeg",
    ) -> UploadFile:
        return UploadFile(name=name, data=data, content_type=content_type)

    return _factory


@pytest.fixture
def mock_agent() -> MagicMock:
    """A scripted storage agent.

    ``create_space`` hands out spaces named after the request and
    ``upload_file`` succeeds with a fixed CID unless its side effect is
    replaced by the test.
    """
    agent = MagicMock()
    agent.agent_id = "did:key:z6MkMockAgent"
    current: dict[str, Space | None] = {"space": None}
    counter = {"n": 0}

    async def create_space(name: str, *, account=None) -> Space:
        counter["n"] += 1
        return Space(
            space_id=f"did:key:z6MkSpace{counter['n']}",
            name=name,
            bound_account=account.email if account is not None else None,
        )

    async def set_current_space(space_id: str | None) -> None:
        current["space"] = Space(space_id=space_id) if space_id else None

    agent.create_space = AsyncMock(side_effect=create_space)
    agent.set_current_space = AsyncMock(side_effect=set_current_space)
    agent.current_space = MagicMock(side_effect=lambda: current["space"])
    agent.upload_file = AsyncMock(return_value="bafkreimockcid")
    agent.login = AsyncMock()
    return agent


@pytest.fixture
def mock_transport(mock_agent: MagicMock) -> MagicMock:
    transport = MagicMock()
    transport.create_client = AsyncMock(return_value=mock_agent)
    return transport


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@pytest.fixture
def product_ledger(tmp_dir: Path) -> ProductLedger:
    """Provide a fresh ProductLedger backed by a temp SQLite database."""
    return ProductLedger(tmp_dir / "ledger.db")


@pytest.fixture
def contract(product_ledger: ProductLedger) -> str:
    """Address of a freshly deployed tracer contract."""
    return product_ledger.deploy(ALICE)


@pytest.fixture
def actors() -> StaticActors:
    return StaticActors(ALICE)


@pytest.fixture
def ledger_client(
    product_ledger: ProductLedger, contract: str, actors: StaticActors
) -> ProvenanceLedgerClient:
    return ProvenanceLedgerClient(
        LocalLedgerNode(product_ledger),
        LocalSigner(product_ledger, ALICE),
        contract_address=contract,
        actors=actors,
    )


@pytest.fixture
def session_store(tmp_dir: Path) -> SessionStore:
    return SessionStore(tmp_dir / "session.json")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@pytest.fixture
def service_config(tmp_dir: Path) -> ProdConfig:
    """Development config pointing every data path into the temp dir."""
    data = tmp_dir / "data"
    return ProdConfig(
        _env_file=None,
        data_dir=data,
        blob_store_path=data / "blobs",
        ledger_db_path=data / "ledger.db",
        session_path=data / "session.json",
        upload_retry_delay_seconds=0.0,
        upload_reassert_delay_seconds=0.0,
    )


@pytest.fixture
def deployed(service_config: ProdConfig) -> str:
    """Deploy a tracer contract into the service's ledger and record it."""
    ledger = ProductLedger(service_config.ledger_db_path)
    address = ledger.deploy(ALICE)
    save_deployment(service_config.data_dir, address, service_config.ledger_network)
    return address


@pytest.fixture
def signed_in(service_config: ProdConfig) -> str:
    SessionStore(service_config.session_path).save(ALICE)
    return ALICE


@pytest.fixture
def service(service_config: ProdConfig, deployed: str, signed_in: str) -> ProvenanceService:
    """A service over local storage and a deployed local ledger, signed in as ALICE."""
    return ProvenanceService.from_config(service_config)
