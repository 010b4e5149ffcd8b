"""Tests for the SpaceBootstrapper: configured > account > local fallback."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from provtrace.bridge.local_storage import LocalStorageNetwork
from provtrace.bridge.storage import StorageTransportError
from provtrace.core.space_bootstrapper import (
    ACCOUNT_SPACE_NAME,
    LOCAL_SPACE_NAME,
    SpaceBootstrapper,
    is_configured,
)
from provtrace.errors import SpaceBootstrapError, StorageInitError
from provtrace.models.storage import Space, SpaceTier

EMAIL = "ops@example.com"


async def _hang(*args, **kwargs):
    await asyncio.sleep(10)


class TestIsConfigured:
    @pytest.mark.parametrize("value", [None, "", "   ", "your_space_did_here", "tu_email_aqui"])
    def test_unset_and_placeholders(self, value):
        assert is_configured(value) is False

    def test_real_value(self):
        assert is_configured("did:key:z6MkReal") is True


class TestConfiguredTier:
    @pytest.mark.asyncio
    async def test_configured_space_is_selected(self, network: LocalStorageNetwork):
        existing = network.add_space("provisioned")
        agent = await network.create_client()
        bootstrapper = SpaceBootstrapper(space_id=existing.space_id)

        space = await bootstrapper.ensure_space(agent)

        assert space.space_id == existing.space_id
        assert space.tier == SpaceTier.CONFIGURED
        assert agent.current_space().space_id == existing.space_id

    @pytest.mark.asyncio
    async def test_unknown_configured_space_falls_through(self, network: LocalStorageNetwork):
        agent = await network.create_client()
        bootstrapper = SpaceBootstrapper(space_id="did:key:z6MkMissing")

        space = await bootstrapper.ensure_space(agent)

        assert space.tier == SpaceTier.LOCAL
        assert space.name == LOCAL_SPACE_NAME

    @pytest.mark.asyncio
    async def test_placeholder_is_never_selected(self, mock_agent: MagicMock):
        bootstrapper = SpaceBootstrapper(space_id="your_space_did_here")

        space = await bootstrapper.ensure_space(mock_agent)

        assert space.tier == SpaceTier.LOCAL
        first_call = mock_agent.set_current_space.await_args_list[0]
        assert first_call.args[0] != "your_space_did_here"

    @pytest.mark.asyncio
    async def test_different_current_space_counts_as_failure(self, mock_agent: MagicMock):
        other = Space(space_id="did:key:z6MkOther")
        mock_agent.set_current_space = AsyncMock()
        mock_agent.current_space = MagicMock(return_value=other)
        bootstrapper = SpaceBootstrapper(space_id="did:key:z6MkWanted")

        space = await bootstrapper.ensure_space(mock_agent)

        assert space.tier == SpaceTier.LOCAL
        mock_agent.create_space.assert_awaited_once_with(LOCAL_SPACE_NAME)


class TestAccountTier:
    @pytest.mark.asyncio
    async def test_account_space_created_after_login_and_plan(
        self, network: LocalStorageNetwork
    ):
        network.register_account(EMAIL)
        agent = await network.create_client()
        bootstrapper = SpaceBootstrapper(email=EMAIL)

        space = await bootstrapper.ensure_space(agent)

        assert space.tier == SpaceTier.ACCOUNT
        assert space.name == ACCOUNT_SPACE_NAME
        assert space.bound_account == EMAIL
        assert bootstrapper.login_attempted is True

    @pytest.mark.asyncio
    async def test_login_timeout_falls_back_to_local(self, mock_agent: MagicMock):
        mock_agent.login = AsyncMock(side_effect=_hang)
        bootstrapper = SpaceBootstrapper(email=EMAIL, login_timeout=0.05)

        loop = asyncio.get_running_loop()
        started = loop.time()
        space = await bootstrapper.ensure_space(mock_agent)

        assert space.tier == SpaceTier.LOCAL
        assert loop.time() - started < 2.0

    @pytest.mark.asyncio
    async def test_plan_timeout_falls_back_to_local(self, network: LocalStorageNetwork):
        network.register_account(EMAIL, plan_active=False)
        agent = await network.create_client()
        bootstrapper = SpaceBootstrapper(email=EMAIL, plan_timeout=0.05)

        space = await bootstrapper.ensure_space(agent)

        assert space.tier == SpaceTier.LOCAL
        assert space.bound_account is None

    @pytest.mark.asyncio
    async def test_unknown_account_falls_back_to_local(self, network: LocalStorageNetwork):
        agent = await network.create_client()
        bootstrapper = SpaceBootstrapper(email=EMAIL)

        space = await bootstrapper.ensure_space(agent)

        assert space.tier == SpaceTier.LOCAL

    @pytest.mark.asyncio
    async def test_automatic_login_attempted_once_per_lifetime(self, mock_agent: MagicMock):
        mock_agent.login = AsyncMock(side_effect=StorageTransportError("rejected"))
        bootstrapper = SpaceBootstrapper(email=EMAIL)

        await bootstrapper.ensure_space(mock_agent)
        await bootstrapper.ensure_space(mock_agent)

        assert mock_agent.login.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_logins_share_one_call(self, mock_agent: MagicMock):
        account = MagicMock(email=EMAIL)

        async def slow_login(email: str):
            await asyncio.sleep(0.02)
            return account

        mock_agent.login = AsyncMock(side_effect=slow_login)
        bootstrapper = SpaceBootstrapper(email=EMAIL)

        results = await asyncio.gather(
            bootstrapper.login(mock_agent), bootstrapper.login(mock_agent)
        )

        assert results == [account, account]
        assert mock_agent.login.await_count == 1

    @pytest.mark.asyncio
    async def test_manual_login_after_failure_starts_fresh(self, mock_agent: MagicMock):
        account = MagicMock(email=EMAIL)
        mock_agent.login = AsyncMock(side_effect=[StorageTransportError("down"), account])
        bootstrapper = SpaceBootstrapper(email=EMAIL)

        with pytest.raises(StorageTransportError):
            await bootstrapper.login(mock_agent)
        assert await bootstrapper.login(mock_agent) is account


class TestLocalTier:
    @pytest.mark.asyncio
    async def test_nothing_configured_creates_local_space(self, network: LocalStorageNetwork):
        agent = await network.create_client()
        space = await SpaceBootstrapper().ensure_space(agent)

        assert space.tier == SpaceTier.LOCAL
        assert space.bound_account is None
        assert agent.current_space().space_id == space.space_id

    @pytest.mark.asyncio
    async def test_nothing_configured_never_logs_in(self, mock_agent: MagicMock):
        space = await SpaceBootstrapper().ensure_space(mock_agent)

        assert space.tier == SpaceTier.LOCAL
        mock_agent.login.assert_not_awaited()
        mock_agent.create_space.assert_awaited_once_with(LOCAL_SPACE_NAME)

    @pytest.mark.asyncio
    async def test_local_failure_is_fatal(self, mock_agent: MagicMock):
        mock_agent.create_space = AsyncMock(side_effect=StorageTransportError("disk full"))

        with pytest.raises(SpaceBootstrapError) as exc_info:
            await SpaceBootstrapper().ensure_space(mock_agent)

        assert isinstance(exc_info.value, StorageInitError)
