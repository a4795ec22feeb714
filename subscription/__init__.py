"""
Subscription status synchronization over RevenueCat.
"""

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
    SubscriptionError,
    UnknownSubscriptionError,
    UserSyncFailedError,
)
from subscription.schemas.subscription import (
    PackageDuration,
    SubscriptionOffering,
    SubscriptionPackage,
    SubscriptionStatus,
)
from subscription.services.provider import PurchaseProvider, Storefront
from subscription.services.use_case import SubscriptionUseCase

__version__ = "1.0.0"

__all__ = [
    "InvalidConfigurationError",
    "NetworkError",
    "NotConfiguredError",
    "OfferingsNotAvailableError",
    "PackageDuration",
    "PackageNotFoundError",
    "PurchaseCancelledError",
    "PurchaseFailedError",
    "PurchaseProvider",
    "RestoreFailedError",
    "Storefront",
    "SubscriptionConfiguration",
    "SubscriptionError",
    "SubscriptionOffering",
    "SubscriptionPackage",
    "SubscriptionStatus",
    "SubscriptionUseCase",
    "UnknownSubscriptionError",
    "UserSyncFailedError",
]
