"""
Subscription Schemas
====================

Public value types handed to application code: subscription status,
offerings and packages. All of them are immutable.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PackageDuration(str, Enum):
    """Billing period of a package."""

    MONTHLY = "monthly"
    ANNUAL = "annual"
    LIFETIME = "lifetime"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        """Display label for plan pickers; empty for unknown periods."""
        return _DURATION_LABELS[self]


_DURATION_LABELS = {
    PackageDuration.MONTHLY: "Monthly",
    PackageDuration.ANNUAL: "Annual",
    PackageDuration.LIFETIME: "Lifetime",
    PackageDuration.UNKNOWN: "",
}


class SubscriptionStatus(BaseModel):
    """
    Last-known subscription state of the current user.

    An inactive status never carries entitlement, package or expiration
    data; use ``SubscriptionStatus.inactive()`` for the canonical value.
    """

    model_config = ConfigDict(frozen=True)

    is_active: bool
    active_entitlement_id: Optional[str] = None
    active_package_id: Optional[str] = None
    expiration_date: Optional[datetime] = None  # None for lifetime purchases

    @model_validator(mode="after")
    def _inactive_has_no_details(self) -> "SubscriptionStatus":
        if not self.is_active and (
            self.active_entitlement_id is not None
            or self.active_package_id is not None
            or self.expiration_date is not None
        ):
            raise ValueError("an inactive status cannot carry entitlement details")
        return self

    @classmethod
    def inactive(cls) -> "SubscriptionStatus":
        return INACTIVE


INACTIVE = SubscriptionStatus(is_active=False)


class SubscriptionPackage(BaseModel):
    """One purchasable plan within an offering."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    price: str = Field(description="Localized price string, e.g. '$99.00'")
    price_per_month: Optional[str] = Field(
        default=None,
        description="Localized monthly equivalent, annual packages only",
    )
    duration: PackageDuration


class SubscriptionOffering(BaseModel):
    """A group of purchasable packages, replaced wholesale on every fetch."""

    model_config = ConfigDict(frozen=True)

    id: str
    packages: tuple[SubscriptionPackage, ...] = ()

    def get_package(self, package_id: str) -> Optional[SubscriptionPackage]:
        return next((p for p in self.packages if p.id == package_id), None)
