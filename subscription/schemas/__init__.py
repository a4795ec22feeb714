"""
Pydantic Schemas
================

Public subscription types and RevenueCat payload models.
"""

from subscription.schemas.subscription import (
    INACTIVE,
    PackageDuration,
    SubscriptionOffering,
    SubscriptionPackage,
    SubscriptionStatus,
)

__all__ = [
    "INACTIVE",
    "PackageDuration",
    "SubscriptionOffering",
    "SubscriptionPackage",
    "SubscriptionStatus",
]
