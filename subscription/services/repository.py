"""
Subscription Repository
=======================

Translates between the purchase provider and the public subscription
types, and wraps every provider failure into a ``SubscriptionError``.
Holds no state beyond the configured provider; caching happens in
``SubscriptionUseCase``.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import AsyncIterator, Optional

from subscription.config import SubscriptionConfiguration
from subscription.core.errors import (
    InvalidConfigurationError,
    NetworkError,
    NotConfiguredError,
    OfferingsNotAvailableError,
    PackageNotFoundError,
    PurchaseCancelledError,
    PurchaseFailedError,
    RestoreFailedError,
    StoreProductsUnavailableError,
    UnknownSubscriptionError,
    UserSyncFailedError,
)
from subscription.core.pricing import format_monthly_price
from subscription.schemas.revenuecat import CustomerInfo, PackageType, ProviderPackage
from subscription.schemas.subscription import (
    INACTIVE,
    PackageDuration,
    SubscriptionOffering,
    SubscriptionPackage,
    SubscriptionStatus,
)
from subscription.services.provider import PurchaseProvider, Storefront
from subscription.services.revenuecat import RevenueCatProvider

logger = logging.getLogger(__name__)

_DURATIONS = {
    PackageType.MONTHLY: PackageDuration.MONTHLY,
    PackageType.ANNUAL: PackageDuration.ANNUAL,
    PackageType.LIFETIME: PackageDuration.LIFETIME,
}


def convert_duration(package_type: PackageType) -> PackageDuration:
    return _DURATIONS.get(package_type, PackageDuration.UNKNOWN)


def to_subscription_package(package: ProviderPackage) -> SubscriptionPackage:
    """Map a provider package; only annual packages get a monthly price."""
    product = package.store_product
    duration = convert_duration(package.package_type)

    price_per_month = None
    if duration is PackageDuration.ANNUAL:
        price_per_month = format_monthly_price(
            product.price, product.currency_code, product.locale,
        )

    return SubscriptionPackage(
        id=package.identifier,
        title=product.title,
        description=product.description,
        price=product.localized_price_string,
        price_per_month=price_per_month,
        duration=duration,
    )


class RevenueCatRepository:
    """Provider-facing half of the subscription use case."""

    def __init__(
        self,
        configuration: SubscriptionConfiguration,
        provider: Optional[PurchaseProvider] = None,
        storefront: Optional[Storefront] = None,
    ):
        if not configuration.entitlement_id.strip():
            raise InvalidConfigurationError("entitlement_id must not be empty")

        self.configuration = configuration
        self._provider = self._configure(configuration.api_key, provider, storefront)

    @staticmethod
    def _configure(
        api_key: str,
        provider: Optional[PurchaseProvider],
        storefront: Optional[Storefront],
    ) -> Optional[PurchaseProvider]:
        if not api_key:
            logger.warning("RevenueCat API key is empty, subscriptions are disabled")
            return None

        if provider is None:
            if storefront is None:
                raise InvalidConfigurationError(
                    "a storefront is required to talk to RevenueCat"
                )
            provider = RevenueCatProvider(api_key, storefront)

        logger.info("RevenueCat configured")
        return provider

    @property
    def is_configured(self) -> bool:
        return self._provider is not None

    def _require_provider(self) -> PurchaseProvider:
        if self._provider is None:
            raise NotConfiguredError()
        return self._provider

    # -------------------------------------------------------------------------
    # Translation
    # -------------------------------------------------------------------------

    def extract_status(self, customer_info: Optional[CustomerInfo]) -> SubscriptionStatus:
        """
        Active only when the configured entitlement exists and is active.

        The package id reported is the entitlement's store product identifier.
        """
        if customer_info is None:
            return INACTIVE

        entitlement_id = self.configuration.entitlement_id
        entitlement = customer_info.entitlements.get(entitlement_id)
        if entitlement is None or not entitlement.is_active:
            return INACTIVE

        return SubscriptionStatus(
            is_active=True,
            active_entitlement_id=entitlement_id,
            active_package_id=entitlement.product_identifier,
            expiration_date=entitlement.expiration_date,
        )

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def check_subscription_status(self) -> SubscriptionStatus:
        provider = self._require_provider()
        try:
            customer_info = await provider.get_customer_info()
        except Exception as e:
            raise NetworkError(cause=e) from e
        return self.extract_status(customer_info)

    async def load_offerings(self) -> Optional[SubscriptionOffering]:
        provider = self._require_provider()
        try:
            offerings = await provider.get_offerings()
        except StoreProductsUnavailableError as e:
            raise OfferingsNotAvailableError(cause=e) from e
        except Exception as e:
            raise NetworkError(cause=e) from e

        current = offerings.current
        if current is None:
            return None

        return SubscriptionOffering(
            id=current.identifier,
            packages=tuple(
                to_subscription_package(p) for p in current.available_packages
            ),
        )

    async def purchase(self, package_id: str) -> SubscriptionStatus:
        provider = self._require_provider()
        try:
            offerings = await provider.get_offerings()
        except Exception as e:
            raise PurchaseFailedError(cause=e) from e

        current = offerings.current
        package = current.package(package_id) if current is not None else None
        if package is None:
            raise PackageNotFoundError(package_id)

        try:
            result = await provider.purchase(package)
        except Exception as e:
            raise PurchaseFailedError(cause=e) from e

        if result.user_cancelled:
            raise PurchaseCancelledError()

        status = self.extract_status(result.customer_info)
        if status.is_active:
            logger.info("Purchase successful: package=%s", package_id)
        return status

    async def restore_purchases(self) -> SubscriptionStatus:
        provider = self._require_provider()
        try:
            customer_info = await provider.restore_purchases()
        except Exception as e:
            raise RestoreFailedError(cause=e) from e

        status = self.extract_status(customer_info)
        logger.info(
            "Restore completed: %s",
            "active subscription found" if status.is_active else "no active subscription",
        )
        return status

    async def sync_user(self, user_id: str) -> SubscriptionStatus:
        """
        Log ``user_id`` in, push custom attributes, then re-check status.

        Login and status-check failures raise ``UserSyncFailedError``; a
        failing attributes callback raises ``UnknownSubscriptionError``.
        """
        provider = self._require_provider()
        try:
            await provider.log_in(user_id)
        except Exception as e:
            raise UserSyncFailedError(cause=e) from e

        setter = self.configuration.custom_attributes_setter
        if setter is not None:
            try:
                await setter(user_id)
            except Exception as e:
                raise UnknownSubscriptionError(cause=e) from e

        try:
            customer_info = await provider.get_customer_info()
        except Exception as e:
            raise UserSyncFailedError(cause=e) from e

        status = self.extract_status(customer_info)
        logger.info(
            "RevenueCat logged in: user=%s %s",
            user_id,
            "active subscription" if status.is_active else "no subscription",
        )
        return status

    async def clear_user(self) -> None:
        provider = self._require_provider()
        try:
            await provider.log_out()
        except Exception as e:
            raise UserSyncFailedError(cause=e) from e
        logger.info("RevenueCat logged out")

    async def set_attributes(self, attributes: dict[str, Optional[str]]) -> None:
        provider = self._require_provider()
        try:
            await provider.set_attributes(attributes)
        except Exception as e:
            raise UserSyncFailedError(cause=e) from e

    async def observe_subscription_changes(self) -> AsyncIterator[SubscriptionStatus]:
        """Statuses derived from the provider stream; empty when unconfigured."""
        if self._provider is None:
            return

        async with aclosing(self._provider.customer_info_stream()) as stream:
            async for customer_info in stream:
                status = self.extract_status(customer_info)
                logger.info(
                    "Subscription status updated: %s",
                    "active" if status.is_active else "inactive",
                )
                yield status

    async def close(self) -> None:
        if self._provider is not None:
            await self._provider.close()
