"""
Subscription Use Case Tests
===========================

Tests for the synchronization core and public facade:
- Pull operations write the cache only on success
- The push stream writes every status into the cache
- Closing or cancelling a stream releases the provider listener
- Background observer lifecycle
"""

import asyncio
from contextlib import aclosing
from datetime import datetime, timezone

import pytest

from conftest import EXPIRES_AT, make_customer_info, make_offerings, wait_for
from subscription.core.errors import (
    NotConfiguredError,
    PackageNotFoundError,
    PurchaseCancelledError,
    UserSyncFailedError,
)
from subscription.schemas.revenuecat import PurchaseResult
from subscription.schemas.subscription import INACTIVE, SubscriptionStatus
from subscription.services.use_case import SubscriptionUseCase

PREMIUM_ANNUAL = SubscriptionStatus(
    is_active=True,
    active_entitlement_id="premium",
    active_package_id="pkg_annual",
    expiration_date=EXPIRES_AT,
)


@pytest.fixture
def use_case(configuration, provider) -> SubscriptionUseCase:
    """Built outside of a running loop, so no observer is started."""
    return SubscriptionUseCase(configuration, provider=provider)


@pytest.fixture
def unconfigured_use_case(unconfigured, provider) -> SubscriptionUseCase:
    return SubscriptionUseCase(unconfigured, provider=provider)


# ---------------------------------------------------------------------------
# Pull operations
# ---------------------------------------------------------------------------

class TestCheckStatus:
    @pytest.mark.asyncio
    async def test_premium_scenario(self, use_case, provider):
        status = await use_case.check_status()

        assert status == PREMIUM_ANNUAL
        assert use_case.get_status() == PREMIUM_ANNUAL

    @pytest.mark.asyncio
    async def test_get_status_performs_no_io(self, use_case, provider):
        assert use_case.get_status() is INACTIVE
        provider.get_customer_info.assert_not_called()


class TestNotConfigured:
    """Every provider operation fails fast and leaves the cache alone."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "operation,args",
        [
            ("check_status", ()),
            ("load_offerings", ()),
            ("purchase", ("$rc_annual",)),
            ("restore", ()),
            ("sync_user", ("user-1",)),
            ("clear_user", ()),
        ],
    )
    async def test_operation_raises(self, unconfigured_use_case, provider, operation, args):
        use_case = unconfigured_use_case
        before = use_case.snapshot()

        with pytest.raises(NotConfiguredError):
            await getattr(use_case, operation)(*args)

        assert use_case.snapshot() == before
        provider.get_customer_info.assert_not_called()
        provider.get_offerings.assert_not_called()
        provider.log_out.assert_not_called()

    @pytest.mark.asyncio
    async def test_observe_ends_immediately(self, unconfigured_use_case):
        use_case = unconfigured_use_case

        statuses = [s async for s in use_case.observe_status()]

        assert statuses == []


class TestLoadOfferings:
    @pytest.mark.asyncio
    async def test_caches_offering(self, use_case, provider):
        offering = await use_case.load_offerings()

        assert use_case.get_offerings() == offering
        assert [p.id for p in offering.packages] == ["$rc_monthly", "$rc_annual"]
        assert offering.get_package("$rc_annual").price_per_month == "$8.25"
        assert offering.get_package("$rc_weekly") is None

    @pytest.mark.asyncio
    async def test_caches_none(self, use_case, provider):
        await use_case.load_offerings()

        provider.get_offerings.return_value = make_offerings(current=None)
        assert await use_case.load_offerings() is None
        assert use_case.get_offerings() is None


class TestPurchase:
    @pytest.mark.asyncio
    async def test_success_updates_cache(self, use_case, provider):
        status = await use_case.purchase("$rc_annual")

        assert status == PREMIUM_ANNUAL
        assert use_case.get_status() == PREMIUM_ANNUAL

    @pytest.mark.asyncio
    async def test_unknown_package_leaves_cache(self, use_case, provider):
        await use_case.sync_user("user-1")
        before = use_case.snapshot()

        with pytest.raises(PackageNotFoundError):
            await use_case.purchase("does_not_exist")

        assert use_case.snapshot() == before

    @pytest.mark.asyncio
    async def test_cancel_leaves_status_unchanged(self, use_case, provider):
        provider.get_customer_info.return_value = make_customer_info(entitlement_id=None)
        await use_case.check_status()
        provider.purchase.return_value = PurchaseResult(user_cancelled=True)

        with pytest.raises(PurchaseCancelledError) as exc_info:
            await use_case.purchase("$rc_annual")

        assert exc_info.value.user_cancelled
        assert use_case.get_status() is INACTIVE


class TestRestore:
    @pytest.mark.asyncio
    async def test_restore_updates_cache(self, use_case, provider):
        status = await use_case.restore()

        assert use_case.get_status() == status == PREMIUM_ANNUAL


class TestUserIdentity:
    @pytest.mark.asyncio
    async def test_sync_user_caches_user_and_status(self, use_case, provider):
        await use_case.sync_user("user-1")

        snapshot = use_case.snapshot()
        assert snapshot.user_id == "user-1"
        assert snapshot.status == PREMIUM_ANNUAL

    @pytest.mark.asyncio
    async def test_sync_user_failure_leaves_cache(self, use_case, provider):
        provider.log_in.side_effect = RuntimeError("identify failed")

        with pytest.raises(UserSyncFailedError):
            await use_case.sync_user("user-1")

        assert use_case.get_user_id() is None

    @pytest.mark.asyncio
    async def test_clear_user_resets_even_with_residual_entitlement(
        self, use_case, provider,
    ):
        """Logout reporting an active entitlement still clears the cache."""
        provider.log_out.return_value = make_customer_info()
        await use_case.sync_user("user-1")

        await use_case.clear_user()

        snapshot = use_case.snapshot()
        assert snapshot.status is INACTIVE
        assert snapshot.user_id is None

    @pytest.mark.asyncio
    async def test_set_attributes_passes_through(self, use_case, provider):
        await use_case.set_attributes({"$email": "a@example.com"})

        provider.set_attributes.assert_awaited_once_with({"$email": "a@example.com"})


# ---------------------------------------------------------------------------
# Push stream
# ---------------------------------------------------------------------------

class TestObserveStatus:
    @pytest.mark.asyncio
    async def test_stream_updates_cache(self, use_case, provider):
        async with aclosing(use_case.observe_status()) as stream:
            next_status = asyncio.ensure_future(stream.__anext__())
            await wait_for(lambda: provider.listener_count == 1)

            provider.push(make_customer_info())
            assert await next_status == PREMIUM_ANNUAL
            assert use_case.get_status() == PREMIUM_ANNUAL

            next_status = asyncio.ensure_future(stream.__anext__())
            await asyncio.sleep(0)
            provider.push(make_customer_info(is_active=False))
            assert await next_status is INACTIVE
            assert use_case.get_status() is INACTIVE

    @pytest.mark.asyncio
    async def test_stream_ends_with_provider(self, use_case, provider):
        received = []

        async def consume():
            async for status in use_case.observe_status():
                received.append(status)

        consumer = asyncio.create_task(consume())
        await wait_for(lambda: provider.listener_count == 1)
        provider.push(make_customer_info())
        provider.end_stream()
        await asyncio.wait_for(consumer, timeout=1)

        assert received == [PREMIUM_ANNUAL]
        assert provider.listener_count == 0

    @pytest.mark.asyncio
    async def test_closing_releases_listener(self, use_case, provider):
        stream = use_case.observe_status()
        next_status = asyncio.ensure_future(stream.__anext__())
        await wait_for(lambda: provider.listener_count == 1)
        provider.push(make_customer_info())
        await next_status

        await stream.aclose()

        assert provider.listener_count == 0

    @pytest.mark.asyncio
    async def test_cancelling_consumer_releases_listener(self, use_case, provider):
        async def consume():
            async for _ in use_case.observe_status():
                pass

        consumer = asyncio.create_task(consume())
        await wait_for(lambda: provider.listener_count == 1)

        consumer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await consumer

        assert provider.listener_count == 0


class TestBackgroundObserver:
    @pytest.mark.asyncio
    async def test_starts_on_construction_inside_loop(self, configuration, provider):
        use_case = SubscriptionUseCase(configuration, provider=provider)
        try:
            await wait_for(lambda: provider.listener_count == 1)

            provider.push(make_customer_info())
            await wait_for(lambda: use_case.get_status().is_active)

            assert use_case.get_status() == PREMIUM_ANNUAL
            provider.get_customer_info.assert_not_called()
        finally:
            await use_case.aclose()

        assert provider.listener_count == 0
        assert provider.closed

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, use_case, provider):
        async with use_case:
            await use_case.start()
            await wait_for(lambda: provider.listener_count == 1)
            await asyncio.sleep(0)
            assert provider.listener_count == 1

        assert provider.listener_count == 0

    @pytest.mark.asyncio
    async def test_last_writer_wins(self, configuration, provider):
        """A push arriving after a pull result overwrites it, and vice versa."""
        async with SubscriptionUseCase(configuration, provider=provider) as use_case:
            await wait_for(lambda: provider.listener_count == 1)

            await use_case.check_status()
            assert use_case.get_status() == PREMIUM_ANNUAL

            provider.push(make_customer_info(is_active=False))
            await wait_for(lambda: not use_case.get_status().is_active)

            provider.get_customer_info.return_value = make_customer_info(
                product_id="monthly_999",
                expires_at=datetime(2026, 12, 1, tzinfo=timezone.utc),
            )
            status = await use_case.check_status()
            assert use_case.get_status() == status
            assert status.active_package_id == "monthly_999"

    @pytest.mark.asyncio
    async def test_unconfigured_observer_finishes(self, unconfigured, provider):
        use_case = SubscriptionUseCase(unconfigured, provider=provider)
        task = use_case._observer_task

        await asyncio.wait_for(task, timeout=1)

        assert task.done()
        assert provider.listener_count == 0
        await use_case.aclose()
