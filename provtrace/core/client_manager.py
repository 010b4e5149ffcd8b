"""Storage client manager: lazily creates and memoizes the client handle.

``get_client()`` may be called concurrently and repeatedly.  The first call
creates the agent and bootstraps its space; every caller arriving before
that finishes awaits the same initialization.  On failure the manager
returns to UNINITIALIZED, so the next call starts from scratch.
"""

from __future__ import annotations

import logging

from provtrace.bridge.storage import StorageAgent, StorageTransport
from provtrace.core.lifecycle import LazyResource
from provtrace.core.space_bootstrapper import SpaceBootstrapper
from provtrace.errors import SpaceBootstrapError, StorageInitError
from provtrace.models.lifecycle import LifecycleState
from provtrace.models.storage import ClientStatus, Space

logger = logging.getLogger(__name__)


class ClientHandle:
    """The initialized storage-client connection.

    Owns the agent and therefore its current space.  ``initialized`` flips
    to True once and never back; a reset produces a new handle.
    """

    def __init__(self, agent: StorageAgent) -> None:
        self.agent = agent
        self._initialized = False

    @property
    def agent_id(self) -> str:
        return self.agent.agent_id

    @property
    def current_space(self) -> Space | None:
        return self.agent.current_space()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def mark_initialized(self) -> None:
        self._initialized = True

    def __repr__(self) -> str:
        space = self.current_space
        return (
            f"ClientHandle(agent_id={self.agent_id!r}, "
            f"space={space.space_id if space else None!r}, "
            f"initialized={self._initialized})"
        )


class StorageClientManager:
    """Process-scoped owner of the storage client.

    Parameters
    ----------
    transport:
        Storage network transport used to create the agent.
    bootstrapper:
        Establishes the current space during initialization.
    """

    def __init__(self, transport: StorageTransport, bootstrapper: SpaceBootstrapper) -> None:
        self._transport = transport
        self._bootstrapper = bootstrapper
        self._client: LazyResource[ClientHandle] = LazyResource(
            self._initialize, name="storage-client"
        )
        self._space: Space | None = None

    @property
    def transport(self) -> StorageTransport:
        return self._transport

    @property
    def bootstrapper(self) -> SpaceBootstrapper:
        return self._bootstrapper

    @property
    def state(self) -> LifecycleState:
        return self._client.state

    async def get_client(self) -> ClientHandle:
        """Return the ready client handle, initializing it on first use."""
        return await self._client.get()

    def record_space(self, space: Space) -> None:
        """Remember the space made current outside the bootstrap cycle."""
        self._space = space

    def reset(self) -> None:
        """Drop the client so the next ``get_client()`` bootstraps again."""
        self._space = None
        self._client.reset()

    def status(self) -> ClientStatus:
        """Diagnostic snapshot; never triggers initialization."""
        handle = self._client.value
        if handle is None:
            return ClientStatus(
                is_ready=False,
                has_space=False,
                state=self._client.state,
                error=self._client.last_error,
            )
        current = handle.current_space
        tier = None
        if current is not None and self._space is not None and self._space.space_id == current.space_id:
            tier = self._space.tier
        return ClientStatus(
            is_ready=handle.initialized,
            has_space=current is not None,
            space_id=current.space_id if current is not None else None,
            space_tier=tier,
            agent_id=handle.agent_id,
            state=self._client.state,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _initialize(self) -> ClientHandle:
        logger.info("Initializing storage client")
        try:
            agent = await self._transport.create_client()
        except Exception as exc:
            logger.error("Storage client creation failed: %s", exc)
            raise StorageInitError(f"Storage client creation failed: {exc}") from exc

        handle = ClientHandle(agent)
        try:
            space = await self._bootstrapper.ensure_space(agent)
        except SpaceBootstrapError:
            raise
        except Exception as exc:
            logger.error("Space bootstrap failed: %s", exc)
            raise StorageInitError(f"Space bootstrap failed: {exc}") from exc

        self._space = space
        handle.mark_initialized()
        logger.info(
            "Storage client ready: agent=%s space=%s tier=%s",
            handle.agent_id,
            space.space_id,
            space.tier.value if space.tier else "unknown",
        )
        return handle
