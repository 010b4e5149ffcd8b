"""Authenticated actor models, supplied by the external wallet login."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator


def normalize_address(address: str | None) -> str:
    """Normalize an account address to lowercase with a 0x prefix."""
    if not address:
        return ""
    address = address.strip().lower()
    if not address.startswith("0x"):
        address = "0x" + address
    return address


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AuthSession(BaseModel):
    """A signed-in actor, as persisted by the login collaborator."""

    model_config = ConfigDict(frozen=True)

    address: str
    signature: str = ""
    expires_at: datetime

    @field_validator("address")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_address(value)

    @field_validator("expires_at")
    @classmethod
    def _expires_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are taken as UTC.
        return _as_utc(value)

    def is_expired(self, now: datetime | None = None) -> bool:
        now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
        return now >= self.expires_at


class Actor(BaseModel):
    """The actor a write is recorded under."""

    model_config = ConfigDict(frozen=True)

    address: str
    is_valid: bool = True
