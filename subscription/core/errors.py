"""
Error Handling
==============

Subscription error taxonomy, provider-level errors, and the FastAPI
exception handlers that render them.

Every provider failure is wrapped into exactly one ``SubscriptionError``
subclass and raised to the immediate caller; nothing here retries.
``PurchaseCancelledError`` carries ``user_cancelled = True`` so UI layers
can suppress error display for a cancelled purchase sheet.
"""

from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """Standardized error codes."""

    # Subscription (SUB_001 - SUB_010)
    SUB_NOT_CONFIGURED = "SUB_001"
    SUB_INVALID_CONFIGURATION = "SUB_002"
    SUB_NETWORK_ERROR = "SUB_003"
    SUB_PURCHASE_CANCELLED = "SUB_004"
    SUB_PURCHASE_FAILED = "SUB_005"
    SUB_RESTORE_FAILED = "SUB_006"
    SUB_OFFERINGS_NOT_AVAILABLE = "SUB_007"
    SUB_PACKAGE_NOT_FOUND = "SUB_008"
    SUB_USER_SYNC_FAILED = "SUB_009"
    SUB_UNKNOWN = "SUB_010"

    # Webhooks
    WEBHOOK_UNAUTHORIZED = "WEBHOOK_001"
    WEBHOOK_INVALID_PAYLOAD = "WEBHOOK_002"


# =============================================================================
# Subscription Errors
# =============================================================================

class SubscriptionError(Exception):
    """Base class for every error surfaced by the subscription use case."""

    code: str = ErrorCodes.SUB_UNKNOWN
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "A subscription error occurred"
    user_cancelled: bool = False

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        cause: Optional[BaseException] = None,
    ):
        self.cause = cause
        if message is None:
            message = self.default_message
            if cause is not None:
                message = f"{message}: {cause}"
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotConfiguredError(SubscriptionError):
    """The purchase provider was never configured (empty API key)."""

    code = ErrorCodes.SUB_NOT_CONFIGURED
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Subscriptions are not configured"


class InvalidConfigurationError(SubscriptionError):
    """The construction input is unusable."""

    code = ErrorCodes.SUB_INVALID_CONFIGURATION
    default_message = "Invalid subscription configuration"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"{self.default_message}: {detail}")


class NetworkError(SubscriptionError):
    code = ErrorCodes.SUB_NETWORK_ERROR
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Network error"


class PurchaseCancelledError(SubscriptionError):
    """The user dismissed the native purchase sheet. Not a failure."""

    code = ErrorCodes.SUB_PURCHASE_CANCELLED
    status_code = status.HTTP_409_CONFLICT
    default_message = "Purchase was cancelled"
    user_cancelled = True


class PurchaseFailedError(SubscriptionError):
    code = ErrorCodes.SUB_PURCHASE_FAILED
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "Purchase failed"


class RestoreFailedError(SubscriptionError):
    code = ErrorCodes.SUB_RESTORE_FAILED
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Restore failed"


class OfferingsNotAvailableError(SubscriptionError):
    code = ErrorCodes.SUB_OFFERINGS_NOT_AVAILABLE
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Offerings could not be loaded"


class PackageNotFoundError(SubscriptionError):
    code = ErrorCodes.SUB_PACKAGE_NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Package not found"

    def __init__(self, package_id: str):
        self.package_id = package_id
        super().__init__(f"{self.default_message}: {package_id}")


class UserSyncFailedError(SubscriptionError):
    code = ErrorCodes.SUB_USER_SYNC_FAILED
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "User sync failed"


class UnknownSubscriptionError(SubscriptionError):
    code = ErrorCodes.SUB_UNKNOWN
    default_message = "An unexpected error occurred"


# =============================================================================
# Provider Errors
# =============================================================================

class ProviderError(Exception):
    """Raised by a purchase provider implementation."""


class RevenueCatAPIError(ProviderError):
    """RevenueCat REST API answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str, code: Optional[int] = None):
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"RevenueCat API error {status_code}: {message}")


class StoreProductsUnavailableError(ProviderError):
    """None of an offering's products could be fetched from the store."""

    def __init__(self, offering_id: str, product_ids: list[str]):
        self.offering_id = offering_id
        self.product_ids = product_ids
        super().__init__(
            f"No store products available for offering '{offering_id}' "
            f"(requested: {', '.join(product_ids) or 'none'})"
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def subscription_exception_handler(
    request: Request,
    exc: SubscriptionError,
) -> JSONResponse:
    """Handler for SubscriptionError."""
    error = exc.to_dict()
    if exc.user_cancelled:
        error["user_cancelled"] = True

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": error,
        },
    )


def setup_exception_handlers(app):
    """
    Register exception handlers with FastAPI app.

    Usage:
        from subscription.core.errors import setup_exception_handlers
        setup_exception_handlers(app)
    """
    app.add_exception_handler(SubscriptionError, subscription_exception_handler)
