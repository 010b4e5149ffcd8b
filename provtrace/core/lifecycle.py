"""Single-flight primitives for lazily-established connections.

``SingleFlight`` lets concurrent callers share one in-flight coroutine and
its result; once it finishes the slot is free again.  ``LazyResource``
builds the Uninitialized -> Initializing -> Ready lifecycle on top of it:

- All callers arriving before the first initialization completes await the
  same task, so the factory runs exactly once.
- A failed initialization returns to UNINITIALIZED so the next call retries
  from scratch.
- READY is left only through ``reset()``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from provtrace.models.lifecycle import VALID_TRANSITIONS, LifecycleState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InvalidTransitionError(RuntimeError):
    """Raised when a lifecycle transition is not allowed."""


class SingleFlight(Generic[T]):
    """Deduplicating join for one coroutine at a time.

    Not a queue: while a call is in flight, new callers receive its result;
    after it completes, the next call starts a fresh execution.

    Parameters
    ----------
    name:
        Label used in log messages.
    """

    def __init__(self, name: str = "single-flight") -> None:
        self._name = name
        self._task: asyncio.Task[T] | None = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T:
        """Start ``factory()`` or join the execution already in flight."""
        task = self._task
        if task is None or task.done():
            task = asyncio.ensure_future(self._execute(factory))
            self._task = task
        else:
            logger.debug("%s: joining in-flight call", self._name)
        # Shielded so one cancelled caller does not cancel the shared work.
        return await asyncio.shield(task)

    async def _execute(self, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            if self._task is asyncio.current_task():
                self._task = None

    def forget(self) -> None:
        """Drop the reference to the in-flight task without cancelling it."""
        self._task = None

    def cancel(self) -> None:
        """Cancel the in-flight task, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


class LazyResource(Generic[T]):
    """A value created on first use, at most once per lifecycle.

    Parameters
    ----------
    factory:
        Coroutine function producing the value.
    name:
        Label used in log messages.
    """

    def __init__(self, factory: Callable[[], Awaitable[T]], *, name: str) -> None:
        self._factory = factory
        self._name = name
        self._state = LifecycleState.UNINITIALIZED
        self._value: T | None = None
        self._last_error: str | None = None
        self._generation = 0
        self._init: SingleFlight[T] = SingleFlight(name)

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def value(self) -> T | None:
        """The ready value, or None if not (yet) initialized."""
        return self._value

    @property
    def last_error(self) -> str | None:
        return self._last_error

    async def get(self) -> T:
        """Return the value, initializing it if needed."""
        if self._state == LifecycleState.READY and self._value is not None:
            return self._value
        generation = self._generation
        return await self._init.run(lambda: self._initialize(generation))

    def reset(self) -> None:
        """Return to UNINITIALIZED; an initialization in flight is orphaned."""
        self._generation += 1
        self._value = None
        self._state = LifecycleState.UNINITIALIZED
        self._init.forget()
        logger.info("%s: reset to %s", self._name, self._state.value)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _initialize(self, generation: int) -> T:
        # A reset before this task started orphans it; it must not touch state.
        if generation == self._generation:
            self._transition(LifecycleState.INITIALIZING)
        try:
            value = await self._factory()
        except BaseException as exc:
            if generation == self._generation:
                self._last_error = str(exc) or type(exc).__name__
                self._transition(LifecycleState.UNINITIALIZED)
            raise
        if generation == self._generation:
            self._value = value
            self._last_error = None
            self._transition(LifecycleState.READY)
        return value

    def _transition(self, target: LifecycleState) -> None:
        allowed = VALID_TRANSITIONS.get(self._state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"{self._name}: cannot transition from {self._state.value} "
                f"to {target.value}. Allowed: {[s.value for s in allowed]}"
            )
        logger.debug("%s: %s -> %s", self._name, self._state.value, target.value)
        self._state = target
