"""
Subscription Use Case
=====================

Public entry point for application code. Keeps ``SubscriptionState`` in
sync with the purchase provider in two ways:

1. Pull operations (check, offerings, purchase, restore, user sync/clear)
   call the provider and write the result into the cache before returning.
2. A background task drains the provider's customer-info stream and writes
   every status it sees into the same cache.

Usage::

    config = SubscriptionConfiguration(api_key="appl_xxx")
    async with SubscriptionUseCase(config, storefront=storefront) as subscriptions:
        status = await subscriptions.check_status()
        if status.is_active:
            ...

Both writers share the cache lock; between a push event and a concurrent
pull result the later completion wins.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, Optional

from subscription.config import SubscriptionConfiguration
from subscription.schemas.subscription import (
    INACTIVE,
    SubscriptionOffering,
    SubscriptionStatus,
)
from subscription.services.provider import PurchaseProvider, Storefront
from subscription.services.repository import RevenueCatRepository
from subscription.services.state import StateSnapshot, SubscriptionState

logger = logging.getLogger(__name__)


class SubscriptionUseCase:
    """Subscription status, offerings, purchase and restore for one app user."""

    def __init__(
        self,
        configuration: SubscriptionConfiguration,
        *,
        provider: Optional[PurchaseProvider] = None,
        storefront: Optional[Storefront] = None,
    ) -> None:
        self._state = SubscriptionState()
        self._repository = RevenueCatRepository(configuration, provider, storefront)
        self._observer_task: Optional[asyncio.Task] = None

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; observer starts on start()")
        else:
            self._start_observing()

    @property
    def is_configured(self) -> bool:
        return self._repository.is_configured

    # -- lifecycle ---------------------------------------------------------

    def _start_observing(self) -> None:
        if self._observer_task is not None and not self._observer_task.done():
            return
        self._observer_task = asyncio.create_task(
            self._observe_loop(), name="subscription-observer",
        )
        self._observer_task.add_done_callback(self._on_observer_done)

    async def _observe_loop(self) -> None:
        async with aclosing(self.observe_changes()) as changes:
            async for _status in changes:
                pass
        logger.info("Subscription change stream ended")

    @staticmethod
    def _on_observer_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Subscription observer stopped with error",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def start(self) -> None:
        """Start the background observer if it is not already running."""
        self._start_observing()

    async def stop(self) -> None:
        """Cancel the background observer."""
        task, self._observer_task = self._observer_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def aclose(self) -> None:
        await self.stop()
        await self._repository.close()

    async def __aenter__(self) -> "SubscriptionUseCase":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -- cached reads ------------------------------------------------------

    def get_status(self) -> SubscriptionStatus:
        """Last-known status. Never performs I/O."""
        return self._state.status

    def get_offerings(self) -> Optional[SubscriptionOffering]:
        return self._state.offerings

    def get_user_id(self) -> Optional[str]:
        return self._state.user_id

    def snapshot(self) -> StateSnapshot:
        return self._state.snapshot()

    # -- streams -----------------------------------------------------------

    async def observe_changes(self) -> AsyncIterator[SubscriptionStatus]:
        """
        Yield provider status changes, caching each one.

        Ends when the provider stream ends. Close the iterator (or cancel the
        consuming task) to release the provider listener.
        """
        async with aclosing(self._repository.observe_subscription_changes()) as statuses:
            async for status in statuses:
                self._state.set_status(status)
                yield status

    def observe_status(self) -> AsyncIterator[SubscriptionStatus]:
        return self.observe_changes()

    # -- provider operations -----------------------------------------------

    async def check_status(self) -> SubscriptionStatus:
        status = await self._repository.check_subscription_status()
        self._state.set_status(status)
        return status

    async def load_offerings(self) -> Optional[SubscriptionOffering]:
        offering = await self._repository.load_offerings()
        self._state.set_offerings(offering)
        return offering

    async def purchase(self, package_id: str) -> SubscriptionStatus:
        status = await self._repository.purchase(package_id)
        self._state.set_status(status)
        return status

    async def restore(self) -> SubscriptionStatus:
        status = await self._repository.restore_purchases()
        self._state.set_status(status)
        return status

    async def sync_user(self, user_id: str) -> SubscriptionStatus:
        status = await self._repository.sync_user(user_id)
        self._state.set_user_id(user_id)
        self._state.set_status(status)
        return status

    async def clear_user(self) -> None:
        await self._repository.clear_user()
        self._state.set_user_id(None)
        self._state.set_status(INACTIVE)

    async def set_attributes(self, attributes: dict[str, Optional[str]]) -> None:
        """Send subscriber attributes for the current user."""
        await self._repository.set_attributes(attributes)
