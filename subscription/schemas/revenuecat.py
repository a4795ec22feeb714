"""
RevenueCat Schemas
==================

Pydantic models for the data the purchase provider hands back: customer
info and entitlements, offerings and their store products, purchase
results, and webhook events.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from subscription.core.pricing import format_price


def parse_rc_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse RevenueCat ISO-8601 timestamps (``2026-01-01T00:00:00Z``)."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# ─── Customer Info ───────────────────────────────────────────────────────────


class EntitlementInfo(BaseModel):
    """State of one entitlement for the current customer."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    product_identifier: str
    is_active: bool
    expiration_date: Optional[datetime] = None
    purchase_date: Optional[datetime] = None

    @classmethod
    def from_payload(
        cls,
        identifier: str,
        data: dict[str, Any],
        request_date: datetime,
    ) -> "EntitlementInfo":
        """
        Build from a ``subscriber.entitlements[identifier]`` payload.

        An entitlement without ``expires_date`` never expires. Otherwise it
        is active while either the expiration or the grace period lies after
        the request date.
        """
        expires = parse_rc_datetime(data.get("expires_date"))
        grace = parse_rc_datetime(data.get("grace_period_expires_date"))

        if expires is None:
            is_active = True
        else:
            is_active = expires > request_date or (
                grace is not None and grace > request_date
            )

        return cls(
            identifier=identifier,
            product_identifier=data.get("product_identifier", ""),
            is_active=is_active,
            expiration_date=expires,
            purchase_date=parse_rc_datetime(data.get("purchase_date")),
        )


class CustomerInfo(BaseModel):
    """Entitlement state of a RevenueCat subscriber at ``request_date``."""

    model_config = ConfigDict(frozen=True)

    original_app_user_id: str
    entitlements: dict[str, EntitlementInfo] = Field(default_factory=dict)
    request_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @classmethod
    def from_subscriber(
        cls,
        subscriber: dict[str, Any],
        request_date: Optional[datetime] = None,
    ) -> "CustomerInfo":
        request_date = request_date or datetime.now(timezone.utc)
        entitlements = {
            identifier: EntitlementInfo.from_payload(identifier, data, request_date)
            for identifier, data in (subscriber.get("entitlements") or {}).items()
        }
        return cls(
            original_app_user_id=subscriber.get("original_app_user_id", ""),
            entitlements=entitlements,
            request_date=request_date,
        )

    @property
    def active_entitlements(self) -> dict[str, EntitlementInfo]:
        return {k: v for k, v in self.entitlements.items() if v.is_active}

    def same_state(self, other: Optional["CustomerInfo"]) -> bool:
        """True when ``other`` carries the same subscriber and entitlements."""
        if other is None:
            return False
        return (
            self.original_app_user_id == other.original_app_user_id
            and self.entitlements == other.entitlements
        )


# ─── Offerings ───────────────────────────────────────────────────────────────


class PackageType(str, Enum):
    """RevenueCat package identifiers with a well-known meaning."""

    LIFETIME = "$rc_lifetime"
    ANNUAL = "$rc_annual"
    SIX_MONTH = "$rc_six_month"
    THREE_MONTH = "$rc_three_month"
    TWO_MONTH = "$rc_two_month"
    MONTHLY = "$rc_monthly"
    WEEKLY = "$rc_weekly"
    CUSTOM = "custom"

    @classmethod
    def from_identifier(cls, identifier: str) -> "PackageType":
        try:
            return cls(identifier)
        except ValueError:
            return cls.CUSTOM


class StoreProduct(BaseModel):
    """Product metadata as reported by the platform store."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    title: str
    description: str = ""
    price: Decimal
    currency_code: str = "USD"
    locale: Optional[str] = None
    price_string: Optional[str] = None

    @property
    def localized_price_string(self) -> str:
        if self.price_string:
            return self.price_string
        return format_price(self.price, self.currency_code, self.locale)


class ProviderPackage(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    package_type: PackageType
    offering_identifier: str
    store_product: StoreProduct


class ProviderOffering(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    description: str = ""
    available_packages: tuple[ProviderPackage, ...] = ()

    def package(self, identifier: str) -> Optional[ProviderPackage]:
        return next(
            (p for p in self.available_packages if p.identifier == identifier),
            None,
        )


class Offerings(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_offering_id: Optional[str] = None
    all: dict[str, ProviderOffering] = Field(default_factory=dict)

    @property
    def current(self) -> Optional[ProviderOffering]:
        if self.current_offering_id is None:
            return None
        return self.all.get(self.current_offering_id)


# ─── Purchases ───────────────────────────────────────────────────────────────


class StoreTransaction(BaseModel):
    """Receipt data produced by the store after the user confirms a purchase."""

    model_config = ConfigDict(frozen=True)

    product_identifier: str
    fetch_token: str = Field(description="Store receipt / purchase token")
    transaction_id: Optional[str] = None


class PurchaseResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    customer_info: Optional[CustomerInfo] = None
    user_cancelled: bool = False
    transaction: Optional[StoreTransaction] = None


# ─── Webhooks ────────────────────────────────────────────────────────────────


class RevenueCatEventType(str, Enum):
    """All event types that RevenueCat can send via webhooks."""

    TEST = "TEST"
    INITIAL_PURCHASE = "INITIAL_PURCHASE"
    RENEWAL = "RENEWAL"
    CANCELLATION = "CANCELLATION"
    UNCANCELLATION = "UNCANCELLATION"
    NON_RENEWING_PURCHASE = "NON_RENEWING_PURCHASE"
    SUBSCRIPTION_PAUSED = "SUBSCRIPTION_PAUSED"
    EXPIRATION = "EXPIRATION"
    BILLING_ISSUE = "BILLING_ISSUE"
    PRODUCT_CHANGE = "PRODUCT_CHANGE"
    TRANSFER = "TRANSFER"
    SUBSCRIBER_ALIAS = "SUBSCRIBER_ALIAS"


class RevenueCatWebhookEvent(BaseModel):
    """
    The ``event`` object inside a webhook body:
    ``{ "api_version": "1.0", "event": { ... } }``
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(description="Unique event ID")
    type: RevenueCatEventType
    app_user_id: Optional[str] = None
    original_app_user_id: Optional[str] = None
    aliases: list[str] = Field(default_factory=list)
    transferred_from: Optional[list[str]] = None
    transferred_to: Optional[list[str]] = None
    product_id: Optional[str] = None
    entitlement_ids: Optional[list[str]] = None

    def concerns(self, user_id: Optional[str]) -> bool:
        """True when the event names ``user_id`` in any identity field."""
        if not user_id:
            return False
        ids = {self.app_user_id, self.original_app_user_id, *self.aliases}
        ids.update(self.transferred_from or [])
        ids.update(self.transferred_to or [])
        return user_id in ids
