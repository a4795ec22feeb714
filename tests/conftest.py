"""
Shared test fixtures: an in-memory purchase provider and storefront.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from subscription.config import SubscriptionConfiguration
from subscription.schemas.revenuecat import (
    CustomerInfo,
    EntitlementInfo,
    Offerings,
    PackageType,
    ProviderOffering,
    ProviderPackage,
    PurchaseResult,
    StoreProduct,
)

EXPIRES_AT = datetime(2027, 1, 1, tzinfo=timezone.utc)

_STREAM_END = object()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_customer_info(
    *,
    entitlement_id: Optional[str] = "premium",
    product_id: str = "pkg_annual",
    is_active: bool = True,
    expires_at: Optional[datetime] = EXPIRES_AT,
    user_id: str = "user-1",
) -> CustomerInfo:
    """Customer info with at most one entitlement."""
    entitlements = {}
    if entitlement_id is not None:
        entitlements[entitlement_id] = EntitlementInfo(
            identifier=entitlement_id,
            product_identifier=product_id,
            is_active=is_active,
            expiration_date=expires_at,
        )
    return CustomerInfo(original_app_user_id=user_id, entitlements=entitlements)


def make_product(
    identifier: str,
    price: str,
    *,
    price_string: Optional[str] = None,
    currency_code: str = "USD",
    locale: Optional[str] = "en_US",
) -> StoreProduct:
    return StoreProduct(
        identifier=identifier,
        title=f"{identifier} title",
        description=f"{identifier} description",
        price=Decimal(price),
        currency_code=currency_code,
        locale=locale,
        price_string=price_string,
    )


def make_offerings(current: Optional[str] = "default") -> Offerings:
    """One offering with a monthly ($9.99) and an annual ($99.00) package."""
    offering = ProviderOffering(
        identifier="default",
        available_packages=(
            ProviderPackage(
                identifier="$rc_monthly",
                package_type=PackageType.MONTHLY,
                offering_identifier="default",
                store_product=make_product("monthly_999", "9.99", price_string="$9.99"),
            ),
            ProviderPackage(
                identifier="$rc_annual",
                package_type=PackageType.ANNUAL,
                offering_identifier="default",
                store_product=make_product("annual_9900", "99.00", price_string="$99.00"),
            ),
        ),
    )
    return Offerings(current_offering_id=current, all={"default": offering})


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeProvider:
    """
    In-memory ``PurchaseProvider``.

    Request/response methods are ``AsyncMock``s so tests can set return
    values and side effects; ``push()`` feeds the customer-info stream.
    """

    def __init__(self) -> None:
        self.app_user_id = "$RCAnonymousID:test"
        self.get_customer_info = AsyncMock(return_value=make_customer_info())
        self.get_offerings = AsyncMock(return_value=make_offerings())
        self.purchase = AsyncMock(
            return_value=PurchaseResult(customer_info=make_customer_info())
        )
        self.restore_purchases = AsyncMock(return_value=make_customer_info())
        self.log_in = AsyncMock(return_value=(make_customer_info(), False))
        self.log_out = AsyncMock(
            return_value=make_customer_info(entitlement_id=None)
        )
        self.set_attributes = AsyncMock(return_value=None)
        self.closed = False
        self._listeners: set[asyncio.Queue] = set()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def push(self, info: CustomerInfo) -> None:
        for queue in self._listeners:
            queue.put_nowait(info)

    def end_stream(self) -> None:
        for queue in self._listeners:
            queue.put_nowait(_STREAM_END)

    async def customer_info_stream(self):
        queue: asyncio.Queue = asyncio.Queue()
        self._listeners.add(queue)
        try:
            while True:
                item = await queue.get()
                if item is _STREAM_END:
                    return
                yield item
        finally:
            self._listeners.discard(queue)

    async def close(self) -> None:
        self.closed = True
        self.end_stream()


class FakeStorefront:
    """In-memory ``Storefront`` with canned products and purchase outcome."""

    def __init__(self, products=None, transaction=None, receipt=None) -> None:
        self.products = list(products or [])
        self.transaction = transaction
        self.receipt = receipt
        self.purchased: list[StoreProduct] = []
        self.requested_ids: list[str] = []

    async def get_products(self, product_ids):
        self.requested_ids = list(product_ids)
        return [p for p in self.products if p.identifier in product_ids]

    async def purchase(self, product):
        self.purchased.append(product)
        return self.transaction

    async def restore(self):
        return self.receipt


async def wait_for(predicate, timeout: float = 1.0) -> None:
    """Yield to the event loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def configuration() -> SubscriptionConfiguration:
    return SubscriptionConfiguration(api_key="appl_test_key", entitlement_id="premium")


@pytest.fixture
def unconfigured() -> SubscriptionConfiguration:
    return SubscriptionConfiguration(api_key="")
