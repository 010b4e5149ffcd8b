"""Storage network transport boundary.

Bridge boundary
---------------
The coordination layer talks to the storage network only through the
protocols below.  A transport creates agents; an agent logs in, manages
spaces and uploads blobs.  Transports signal faults with the tagged
exceptions defined here, which the core dispatches on by class:

- ``StoragePermissionError``: the current space lacks write grants.
- ``StorageTransportError``: any other transport-level fault.

``provtrace.bridge.local_storage`` ships an in-process implementation.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from provtrace.models.storage import Space, UploadFile


class StorageTransportError(RuntimeError):
    """Raised when a storage-network operation fails."""


class StoragePermissionError(StorageTransportError):
    """Raised when the current space refuses a write (no blob/add grant)."""


@runtime_checkable
class StorageAccount(Protocol):
    """An authenticated storage account."""

    @property
    def email(self) -> str: ...

    async def wait_for_plan(self) -> None:
        """Block until the account has a confirmed payment plan."""
        ...


@runtime_checkable
class StorageAgent(Protocol):
    """A connected storage client."""

    @property
    def agent_id(self) -> str: ...

    async def login(self, email: str) -> StorageAccount: ...

    async def create_space(
        self, name: str, *, account: StorageAccount | None = None
    ) -> Space: ...

    async def set_current_space(self, space_id: str | None) -> None: ...

    def current_space(self) -> Space | None: ...

    async def upload_file(self, file: UploadFile) -> str:
        """Upload *file* into the current space and return its CID.

        The call is cancellable: cancelling the awaiting task aborts the
        transfer.
        """
        ...

    async def upload_directory(self, files: list[UploadFile]) -> str:
        """Upload *files* as one directory and return the directory CID.

        Each file stays reachable at ``<cid>/<file name>``.
        """
        ...


@runtime_checkable
class StorageTransport(Protocol):
    """Factory for storage agents."""

    async def create_client(self) -> StorageAgent: ...
