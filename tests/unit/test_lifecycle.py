"""Tests for SingleFlight and LazyResource."""

from __future__ import annotations

import asyncio

import pytest

from provtrace.core.lifecycle import LazyResource, SingleFlight
from provtrace.models.lifecycle import VALID_TRANSITIONS, LifecycleState


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_execution(self):
        flight: SingleFlight[int] = SingleFlight("test")
        calls = 0

        async def work() -> int:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return 42

        results = await asyncio.gather(*(flight.run(work) for _ in range(5)))
        assert results == [42] * 5
        assert calls == 1
        assert not flight.in_flight

    @pytest.mark.asyncio
    async def test_next_call_after_completion_runs_again(self):
        flight: SingleFlight[int] = SingleFlight("test")
        calls = 0

        async def work() -> int:
            nonlocal calls
            calls += 1
            return calls

        assert await flight.run(work) == 1
        assert await flight.run(work) == 2

    @pytest.mark.asyncio
    async def test_joiners_receive_the_same_error(self):
        flight: SingleFlight[int] = SingleFlight("test")

        async def boom() -> int:
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        results = await asyncio.gather(
            flight.run(boom), flight.run(boom), return_exceptions=True
        )
        assert all(isinstance(r, RuntimeError) for r in results)
        assert results[0] is results[1]

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_shared_work(self):
        flight: SingleFlight[str] = SingleFlight("test")

        async def work() -> str:
            await asyncio.sleep(0.05)
            return "done"

        first = asyncio.ensure_future(flight.run(work))
        second = asyncio.ensure_future(flight.run(work))
        await asyncio.sleep(0.01)
        first.cancel()
        assert await second == "done"

    @pytest.mark.asyncio
    async def test_cancel_aborts_in_flight_work(self):
        flight: SingleFlight[str] = SingleFlight("test")

        async def slow() -> str:
            await asyncio.sleep(10)
            return "never"

        caller = asyncio.ensure_future(flight.run(slow))
        await asyncio.sleep(0.01)
        flight.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        assert not flight.in_flight


class TestLazyResource:
    def test_transition_table(self):
        assert VALID_TRANSITIONS[LifecycleState.READY] == set()
        assert LifecycleState.INITIALIZING in VALID_TRANSITIONS[LifecycleState.UNINITIALIZED]

    @pytest.mark.asyncio
    async def test_factory_runs_once(self):
        calls = 0

        async def factory() -> object:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return object()

        resource = LazyResource(factory, name="test")
        values = await asyncio.gather(*(resource.get() for _ in range(10)))
        assert calls == 1
        assert all(v is values[0] for v in values)
        assert resource.state == LifecycleState.READY
        assert await resource.get() is values[0]

    @pytest.mark.asyncio
    async def test_state_is_initializing_while_in_flight(self):
        gate = asyncio.Event()

        async def factory() -> str:
            await gate.wait()
            return "ready"

        resource = LazyResource(factory, name="test")
        pending = asyncio.ensure_future(resource.get())
        await asyncio.sleep(0.01)
        assert resource.state == LifecycleState.INITIALIZING
        gate.set()
        assert await pending == "ready"

    @pytest.mark.asyncio
    async def test_failure_returns_to_uninitialized_and_retries(self):
        attempts = 0

        async def factory() -> str:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise RuntimeError("first try fails")
            return "second"

        resource = LazyResource(factory, name="test")
        with pytest.raises(RuntimeError):
            await resource.get()
        assert resource.state == LifecycleState.UNINITIALIZED
        assert resource.last_error == "first try fails"
        assert await resource.get() == "second"
        assert resource.last_error is None

    @pytest.mark.asyncio
    async def test_reset_forces_new_initialization(self):
        calls = 0

        async def factory() -> int:
            nonlocal calls
            calls += 1
            return calls

        resource = LazyResource(factory, name="test")
        assert await resource.get() == 1
        resource.reset()
        assert resource.state == LifecycleState.UNINITIALIZED
        assert resource.value is None
        assert await resource.get() == 2

    @pytest.mark.asyncio
    async def test_orphaned_initialization_does_not_overwrite_after_reset(self):
        gate = asyncio.Event()
        calls = 0

        async def factory() -> int:
            nonlocal calls
            calls += 1
            mine = calls
            if mine == 1:
                await gate.wait()
            return mine

        resource = LazyResource(factory, name="test")
        orphan = asyncio.ensure_future(resource.get())
        await asyncio.sleep(0)
        resource.reset()
        assert await resource.get() == 2
        gate.set()
        assert await orphan == 1
        assert resource.value == 2
        assert resource.state == LifecycleState.READY
