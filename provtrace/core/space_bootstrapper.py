"""Space bootstrapper: three-tier fallback to a usable storage space.

Tier order, first success wins:

1. **Configured**: a space DID supplied by configuration is selected as
   current.  It only counts if the agent then reports that exact DID as
   current; any mismatch or error is a soft failure.
2. **Account**: with a configured email, log in (bounded by
   ``login_timeout``), wait for the payment plan (bounded by
   ``plan_timeout``) and create a space bound to the account.  At most one
   automatic login is attempted per bootstrapper lifetime.  Failures and
   timeouts are soft.
3. **Local**: create an ephemeral space with no recovery account.  Only a
   transport fault here is fatal (``SpaceBootstrapError``).

Tiers 1 and 2 are not retried after a cycle; a new cycle only happens when
the storage client is reset.
"""

from __future__ import annotations

import asyncio
import logging

from provtrace.bridge.storage import StorageAccount, StorageAgent, StorageTransportError
from provtrace.core.lifecycle import SingleFlight
from provtrace.errors import SpaceBootstrapError
from provtrace.models.storage import Space, SpaceTier

logger = logging.getLogger(__name__)

# Values shipped in example env files; treated as "not configured".
PLACEHOLDER_VALUES: frozenset[str] = frozenset(
    {
        "your_space_did_here",
        "your_email_here",
        "tu_email_aqui",
        "changeme",
    }
)

ACCOUNT_SPACE_NAME = "storacha-space"
LOCAL_SPACE_NAME = "local-space"


def is_configured(value: str | None) -> bool:
    """True if *value* is set and is not a placeholder."""
    return bool(value and value.strip() and value.strip() not in PLACEHOLDER_VALUES)


class SpaceBootstrapper:
    """Establishes the current space for a storage agent.

    Parameters
    ----------
    space_id:
        Configured space DID (tier 1), or None.
    email:
        Configured account email (tier 2), or None.
    login_timeout / plan_timeout:
        Independent budgets, in seconds, for login and plan confirmation.
    """

    def __init__(
        self,
        *,
        space_id: str | None = None,
        email: str | None = None,
        login_timeout: float = 15.0,
        plan_timeout: float = 15.0,
    ) -> None:
        self._space_id = space_id.strip() if is_configured(space_id) else None
        self._email = email.strip() if is_configured(email) else None
        self._login_timeout = login_timeout
        self._plan_timeout = plan_timeout
        self._login_attempted = False
        self._login: SingleFlight[StorageAccount] = SingleFlight("storage-login")

    @property
    def login_attempted(self) -> bool:
        return self._login_attempted

    async def ensure_space(self, agent: StorageAgent) -> Space:
        """Run one bootstrap cycle and return the space made current."""
        space = await self._try_configured_space(agent)
        if space is not None:
            return space

        space = await self._try_account_space(agent)
        if space is not None:
            return space

        try:
            return await self.create_local_space(agent, LOCAL_SPACE_NAME)
        except (StorageTransportError, OSError) as exc:
            logger.error("Local space creation failed: %s", exc)
            raise SpaceBootstrapError(f"Could not create a local space: {exc}") from exc

    async def login(self, agent: StorageAgent, email: str | None = None) -> StorageAccount:
        """Log in, sharing one in-flight login between concurrent callers.

        Also usable for a manual retry after the automatic attempt failed.
        """
        email = email or self._email
        if not email:
            raise StorageTransportError("No account email configured")
        return await self._login.run(lambda: agent.login(email))

    async def create_local_space(self, agent: StorageAgent, name: str) -> Space:
        """Create a space with no bound account and make it current."""
        created = await agent.create_space(name)
        await agent.set_current_space(created.space_id)
        space = created.model_copy(update={"tier": SpaceTier.LOCAL, "bound_account": None})
        logger.warning(
            "Local space %s created (no recovery account); it only lives for this session.",
            space.space_id,
        )
        return space

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    async def _try_configured_space(self, agent: StorageAgent) -> Space | None:
        if self._space_id is None:
            return None
        logger.info("Selecting configured space %s", self._space_id)
        try:
            await agent.set_current_space(self._space_id)
            current = agent.current_space()
        except Exception as exc:
            logger.warning("Configured space %s unusable: %s", self._space_id, exc)
            return None

        if current is None or current.space_id != self._space_id:
            logger.warning(
                "Configured space %s was not selected (current: %s)",
                self._space_id,
                current.space_id if current is not None else None,
            )
            return None

        logger.info("Configured space %s is current", self._space_id)
        return current.model_copy(update={"tier": SpaceTier.CONFIGURED})

    async def _try_account_space(self, agent: StorageAgent) -> Space | None:
        if self._email is None or self._login_attempted:
            return None
        self._login_attempted = True

        logger.info("Logging in to storage account %s", self._email)
        try:
            account = await asyncio.wait_for(
                self.login(agent, self._email), timeout=self._login_timeout
            )
            logger.info("Login succeeded; waiting for payment plan confirmation")
            await asyncio.wait_for(account.wait_for_plan(), timeout=self._plan_timeout)

            created = await agent.create_space(ACCOUNT_SPACE_NAME, account=account)
            await agent.set_current_space(created.space_id)
        except asyncio.TimeoutError:
            logger.warning(
                "Account login/plan timed out for %s; falling back to a local space",
                self._email,
            )
            self._login.cancel()
            return None
        except Exception as exc:
            logger.warning("Account space setup failed for %s: %s", self._email, exc)
            self._login.forget()
            return None

        space = created.model_copy(
            update={"tier": SpaceTier.ACCOUNT, "bound_account": account.email}
        )
        logger.info(
            "Account space %s created; set PROVTRACE_STORAGE_SPACE_DID=%s to reuse it",
            space.space_id,
            space.space_id,
        )
        return space
