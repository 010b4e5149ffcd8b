"""Storage-side models: spaces, upload files, upload tasks, client status."""

from __future__ import annotations

import mimetypes
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator

from provtrace.models.lifecycle import LifecycleState


class SpaceTier(str, Enum):
    """How a space was obtained during bootstrap."""

    CONFIGURED = "configured"
    ACCOUNT = "account"
    LOCAL = "local"


class Space(BaseModel):
    """A storage destination bound to an identity.

    Transports return spaces without a tier; the bootstrapper stamps the
    tier that produced it.  A local space has no recovery account.
    """

    model_config = ConfigDict(frozen=True)

    space_id: str  # DID-like, e.g. "did:key:z6Mk..."
    name: str = ""
    tier: SpaceTier | None = None
    bound_account: str | None = None

    @model_validator(mode="after")
    def _local_space_has_no_account(self) -> Space:
        if self.tier == SpaceTier.LOCAL and self.bound_account:
            raise ValueError("a local-tier space cannot carry a bound account")
        return self


class UploadFile(BaseModel):
    """An opaque blob handed to the storage transport."""

    model_config = ConfigDict(frozen=True)

    name: str
    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Path) -> UploadFile:
        """Read a file from disk, guessing its content type from the suffix."""
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            data=path.read_bytes(),
            content_type=content_type or "application/octet-stream",
        )


class UploadState(str, Enum):
    """Lifecycle of one logical upload."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class UploadTask(BaseModel):
    """One logical upload attempt for one file, owned by the coordinator."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    state: UploadState = UploadState.PENDING
    attempt: int = 0
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    cid: str | None = None
    error: str | None = None


class ClientStatus(BaseModel):
    """Diagnostic snapshot of the storage client."""

    model_config = ConfigDict(frozen=True)

    is_ready: bool
    has_space: bool
    space_id: str | None = None
    space_tier: SpaceTier | None = None
    agent_id: str | None = None
    state: LifecycleState = LifecycleState.UNINITIALIZED
    error: str | None = None
