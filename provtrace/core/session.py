"""File-backed session store for the authenticated actor.

The wallet login flow lives outside provtrace; once it has produced a
signature it hands the address here.  The session is persisted as JSON and
expires after ``ttl_hours`` (24 by default).  ``SessionStore`` implements
the ``ActorSupplier`` protocol consumed by the ledger client.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import ValidationError

from provtrace.models.session import Actor, AuthSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Persist, load and expire the signed-in session.

    Parameters
    ----------
    path:
        JSON file holding the session.
    ttl_hours:
        Lifetime of a saved session.
    """

    def __init__(self, path: Path, *, ttl_hours: float = 24.0) -> None:
        self._path = Path(path)
        self._ttl = timedelta(hours=ttl_hours)

    @property
    def path(self) -> Path:
        return self._path

    def save(self, address: str, signature: str = "") -> AuthSession:
        if not address or not address.strip():
            raise ValueError("address is required")
        session = AuthSession(
            address=address,
            signature=signature,
            expires_at=datetime.now(timezone.utc) + self._ttl,
        )
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(session.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(self._path)
        logger.info("Session saved for %s (expires %s)", session.address, session.expires_at)
        return session

    def load(self) -> AuthSession | None:
        """Return the saved session, or None if absent, unreadable or expired."""
        if not self._path.exists():
            return None
        try:
            session = AuthSession.model_validate(
                json.loads(self._path.read_text(encoding="utf-8"))
            )
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Discarding unreadable session %s: %s", self._path, exc)
            self.clear()
            return None
        if session.is_expired():
            logger.info("Session for %s expired at %s", session.address, session.expires_at)
            self.clear()
            return None
        return session

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)

    def current_actor(self) -> Actor | None:
        session = self.load()
        if session is None:
            return None
        return Actor(address=session.address)
