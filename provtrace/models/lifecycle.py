"""Connection lifecycle shared by the storage client and the ledger handle."""

from __future__ import annotations

from enum import Enum


class LifecycleState(str, Enum):
    """Lazily-established connection state."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


# Valid lifecycle transitions: enforced by LazyResource.
# READY is only left through an explicit reset.
VALID_TRANSITIONS: dict[LifecycleState, set[LifecycleState]] = {
    LifecycleState.UNINITIALIZED: {LifecycleState.INITIALIZING},
    LifecycleState.INITIALIZING: {LifecycleState.READY, LifecycleState.UNINITIALIZED},
    LifecycleState.READY: set(),
}
