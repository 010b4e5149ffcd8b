"""Resolve a CID to the JSON document stored behind it.

Fetches ``GET {gateway}/ipfs/{cid}`` with a fresh ``httpx.AsyncClient`` per
call.  Nothing is cached; caching belongs to whatever layer sits above.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from provtrace.errors import (
    MetadataErrorKind,
    MetadataFetchError,
    MetadataMalformedError,
    MetadataNotFoundError,
)

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY = "https://w3s.link"


class ContentResolver:
    """Stateless gateway reader.

    Parameters
    ----------
    gateway:
        Base URL of the HTTP gateway.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional ``httpx`` transport (e.g. the local storage network's
        gateway, or a ``MockTransport`` in tests).
    """

    def __init__(
        self,
        gateway: str = DEFAULT_GATEWAY,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._gateway = gateway.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def gateway_url(self, cid: str) -> str:
        """Public URL of *cid* on the configured gateway."""
        return f"{self._gateway}/ipfs/{cid}"

    async def resolve(self, cid: str) -> Any:
        """Fetch and parse the JSON document stored at *cid*."""
        if not isinstance(cid, str) or not cid.strip():
            raise MetadataFetchError(
                "CID must be a non-empty string",
                cid=str(cid or ""),
                kind=MetadataErrorKind.INVALID_INPUT,
            )
        cid = cid.strip()
        url = self.gateway_url(cid)

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            logger.error("Gateway request for %s failed: %s", cid, exc)
            raise MetadataFetchError(
                f"Gateway request failed for {cid}: {exc}", cid=cid
            ) from exc

        if not response.is_success:
            logger.warning("Gateway returned %d for %s", response.status_code, cid)
            raise MetadataNotFoundError(
                f"Metadata not found for {cid} (HTTP {response.status_code})",
                cid=cid,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MetadataMalformedError(
                f"Metadata at {cid} is not valid JSON: {exc}",
                cid=cid,
                status_code=response.status_code,
            ) from exc
