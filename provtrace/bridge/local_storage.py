"""Local storage network: an in-process storage transport.

Used when no networked storage service is configured, and by the tests.
It keeps the observable behaviour the coordination layer depends on:

- Blobs are stored content-addressed on disk and identified by CIDv1.
- A directory is a JSON manifest blob mapping file names to CIDs; the
  gateway resolves ``/ipfs/<dir cid>/<name>`` through it.
- Spaces carry write grants; uploading into a space without a grant (or
  with no current space) raises ``StoragePermissionError``.
- Login succeeds only for registered accounts; ``wait_for_plan`` blocks
  until the account's payment plan is activated.
- The space registry is persisted next to the blobs so a space DID printed
  by one process can be configured in the next.

``gateway_transport()`` returns an ``httpx`` transport that serves
``/ipfs/<cid>`` from the same blob store, so the content resolver can read
back what was uploaded without a real gateway.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from pathlib import Path

import httpx

from provtrace.bridge.blob_store import BlobIntegrityError, BlobStore
from provtrace.bridge.storage import StoragePermissionError, StorageTransportError
from provtrace.core.hasher import canonical_json_bytes
from provtrace.models.storage import Space, UploadFile

logger = logging.getLogger(__name__)

_SPACES_FILE = "spaces.json"
DIRECTORY_TYPE = "provtrace/directory"


class LocalAccount:
    """A registered account whose plan can be activated later."""

    def __init__(self, email: str, *, plan_active: bool = True) -> None:
        self._email = email
        self._plan = asyncio.Event()
        if plan_active:
            self._plan.set()

    @property
    def email(self) -> str:
        return self._email

    @property
    def plan_active(self) -> bool:
        return self._plan.is_set()

    def activate_plan(self) -> None:
        self._plan.set()

    async def wait_for_plan(self) -> None:
        await self._plan.wait()


class LocalStorageAgent:
    """A client connected to a ``LocalStorageNetwork``."""

    def __init__(self, network: LocalStorageNetwork, agent_id: str) -> None:
        self._network = network
        self._agent_id = agent_id
        self._current: str | None = None

    @property
    def agent_id(self) -> str:
        return self._agent_id

    async def login(self, email: str) -> LocalAccount:
        account = self._network.get_account(email)
        if account is None:
            raise StorageTransportError(f"No account registered for {email}")
        logger.info("Agent %s logged in as %s", self._agent_id, email)
        return account

    async def create_space(
        self, name: str, *, account: LocalAccount | None = None
    ) -> Space:
        return self._network.add_space(
            name, bound_account=account.email if account is not None else None
        )

    async def set_current_space(self, space_id: str | None) -> None:
        if space_id is not None and self._network.get_space(space_id) is None:
            raise StorageTransportError(f"Unknown space: {space_id}")
        self._current = space_id

    def current_space(self) -> Space | None:
        if self._current is None:
            return None
        return self._network.get_space(self._current)

    async def upload_file(self, file: UploadFile) -> str:
        space_id = self._require_writable()
        if self._network.latency:
            await asyncio.sleep(self._network.latency)
        cid = await self._put(file.name, file.data)
        self._network.uploads += 1
        logger.debug("Stored %s (%d bytes) as %s in %s", file.name, file.size, cid, space_id)
        return cid

    async def upload_directory(self, files: list[UploadFile]) -> str:
        """Store each file, then a manifest mapping names to CIDs.

        The manifest's CID is the directory CID.
        """
        space_id = self._require_writable()
        if self._network.latency:
            await asyncio.sleep(self._network.latency)
        entries = {}
        for file in files:
            entries[file.name] = await self._put(file.name, file.data)
        manifest = {"type": DIRECTORY_TYPE, "entries": entries}
        cid = await self._put("directory manifest", canonical_json_bytes(manifest))
        self._network.uploads += 1
        logger.debug("Stored directory of %d files as %s in %s", len(files), cid, space_id)
        return cid

    def _require_writable(self) -> str:
        space_id = self._current
        if space_id is None:
            raise StoragePermissionError("space/blob/add: no current space selected")
        if not self._network.can_write(space_id):
            raise StoragePermissionError(f"space/blob/add: write not granted on {space_id}")
        return space_id

    async def _put(self, name: str, data: bytes) -> str:
        try:
            return await asyncio.to_thread(self._network.blobs.put, data)
        except BlobIntegrityError as exc:
            raise StorageTransportError(f"blob store rejected {name}: {exc}") from exc


class LocalStorageNetwork:
    """In-process storage network backed by a ``BlobStore``.

    Parameters
    ----------
    base_path:
        Directory holding the blobs and the space registry.
    latency:
        Seconds each upload sleeps before storing (simulates transfer time).
    """

    def __init__(self, base_path: Path, *, latency: float = 0.0) -> None:
        self.blobs = BlobStore(base_path)
        self.latency = latency
        self.clients_created = 0
        self.uploads = 0
        self._accounts: dict[str, LocalAccount] = {}
        self._spaces: dict[str, Space] = {}
        self._writable: dict[str, bool] = {}
        self._load_spaces()

    # ------------------------------------------------------------------
    # StorageTransport
    # ------------------------------------------------------------------

    async def create_client(self) -> LocalStorageAgent:
        self.clients_created += 1
        agent_id = f"did:key:z6Mk{uuid.uuid4().hex}"
        logger.info("Local storage agent created: %s", agent_id)
        return LocalStorageAgent(self, agent_id)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def register_account(self, email: str, *, plan_active: bool = True) -> LocalAccount:
        account = LocalAccount(email, plan_active=plan_active)
        self._accounts[email] = account
        return account

    def get_account(self, email: str) -> LocalAccount | None:
        return self._accounts.get(email)

    # ------------------------------------------------------------------
    # Spaces and grants
    # ------------------------------------------------------------------

    def add_space(self, name: str, *, bound_account: str | None = None) -> Space:
        space = Space(
            space_id=f"did:key:z6Mk{uuid.uuid4().hex}",
            name=name,
            bound_account=bound_account,
        )
        self._spaces[space.space_id] = space
        self._writable[space.space_id] = True
        self._save_spaces()
        return space

    def get_space(self, space_id: str) -> Space | None:
        return self._spaces.get(space_id)

    def can_write(self, space_id: str) -> bool:
        return self._writable.get(space_id, False)

    def revoke_write(self, space_id: str) -> None:
        self._writable[space_id] = False
        self._save_spaces()

    def grant_write(self, space_id: str) -> None:
        self._writable[space_id] = True
        self._save_spaces()

    def _load_spaces(self) -> None:
        path = self.blobs.base_path / _SPACES_FILE
        if not path.exists():
            return
        try:
            records = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable space registry %s: %s", path, exc)
            return
        for record in records:
            space = Space(
                space_id=record["space_id"],
                name=record.get("name", ""),
                bound_account=record.get("bound_account"),
            )
            self._spaces[space.space_id] = space
            self._writable[space.space_id] = bool(record.get("writable", True))

    def _save_spaces(self) -> None:
        records = [
            {
                "space_id": space.space_id,
                "name": space.name,
                "bound_account": space.bound_account,
                "writable": self._writable.get(space.space_id, False),
            }
            for space in self._spaces.values()
        ]
        path = self.blobs.base_path / _SPACES_FILE
        path.write_text(json.dumps(records, indent=2), encoding="utf-8")

    # ------------------------------------------------------------------
    # Gateway
    # ------------------------------------------------------------------

    def gateway_transport(self) -> httpx.MockTransport:
        """An httpx transport answering ``GET /ipfs/<cid>`` from the blob store."""
        return httpx.MockTransport(self._serve_gateway)

    def _serve_gateway(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method != "GET" or not path.startswith("/ipfs/"):
            return httpx.Response(404, text="not found")
        cid, _, name = path[len("/ipfs/"):].strip("/").partition("/")
        try:
            data = self.blobs.get(cid)
            if name:
                data = self.blobs.get(self._directory_entry(data, name))
        except (FileNotFoundError, KeyError):
            return httpx.Response(404, text=f"no link named {path[len('/ipfs/'):]!r}")
        return httpx.Response(200, content=data)

    @staticmethod
    def _directory_entry(data: bytes, name: str) -> str:
        try:
            manifest = json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise KeyError(name) from exc
        if not isinstance(manifest, dict) or manifest.get("type") != DIRECTORY_TYPE:
            raise KeyError(name)
        entries = manifest.get("entries")
        if not isinstance(entries, dict) or name not in entries:
            raise KeyError(name)
        return entries[name]
