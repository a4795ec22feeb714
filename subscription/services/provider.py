"""
Purchase Provider Boundary
==========================

Interfaces the synchronization core depends on. ``PurchaseProvider`` is the
subscription backend (RevenueCat); ``Storefront`` is the platform store that
owns product metadata, the native purchase sheet and receipts. Any object
implementing these shapes is substitutable.
"""

from typing import AsyncIterator, Optional, Protocol, Sequence, runtime_checkable

from subscription.schemas.revenuecat import (
    CustomerInfo,
    Offerings,
    ProviderPackage,
    PurchaseResult,
    StoreProduct,
    StoreTransaction,
)


@runtime_checkable
class PurchaseProvider(Protocol):
    """Request/response operations plus one customer-info push stream."""

    @property
    def app_user_id(self) -> str: ...

    async def get_customer_info(self) -> CustomerInfo: ...

    async def get_offerings(self) -> Offerings: ...

    async def purchase(self, package: ProviderPackage) -> PurchaseResult: ...

    async def restore_purchases(self) -> CustomerInfo: ...

    async def log_in(self, app_user_id: str) -> tuple[CustomerInfo, bool]:
        """Switch identity; returns customer info and whether it was created."""
        ...

    async def log_out(self) -> CustomerInfo: ...

    async def set_attributes(self, attributes: dict[str, Optional[str]]) -> None: ...

    def customer_info_stream(self) -> AsyncIterator[CustomerInfo]:
        """
        Yield the current customer info (if known) and every change after it.

        Closing the iterator must remove the listener.
        """
        ...

    async def close(self) -> None: ...


@runtime_checkable
class Storefront(Protocol):
    """Store-side half of a purchase."""

    async def get_products(self, product_ids: Sequence[str]) -> list[StoreProduct]: ...

    async def purchase(self, product: StoreProduct) -> Optional[StoreTransaction]:
        """Present the purchase sheet; ``None`` means the user cancelled."""
        ...

    async def restore(self) -> Optional[str]:
        """Return the current store receipt, if the device has one."""
        ...
