"""
Webhooks API Endpoints
======================

Feeds RevenueCat webhooks into the subscription push stream.

Authentication:
    RevenueCat sends the configured authorization token in the
    ``Authorization`` header. We compare it against REVENUECAT_WEBHOOK_SECRET.

When an event names the currently synced user, the status is re-checked.
The check writes the cache and, when the entitlement state changed, pushes
the new status to every ``observe_status()`` subscriber.
"""

import logging

from fastapi import APIRouter, Header, HTTPException, Request, status
from pydantic import ValidationError

from subscription.config import settings
from subscription.core.errors import ErrorCodes, SubscriptionError
from subscription.dependencies import SubscriptionUseCaseDep
from subscription.schemas.revenuecat import RevenueCatWebhookEvent

logger = logging.getLogger(__name__)

router = APIRouter()


def verify_webhook_authorization(authorization_header: str) -> bool:
    """
    Verify RevenueCat webhook authorization header.

    Returns:
        True if the token matches our configured secret.
    """
    if not settings.REVENUECAT_WEBHOOK_SECRET:
        logger.warning("REVENUECAT_WEBHOOK_SECRET not configured")
        return False

    # RevenueCat sends the token exactly as configured in the dashboard
    return authorization_header == settings.REVENUECAT_WEBHOOK_SECRET


@router.post("/revenuecat")
async def revenuecat_webhook(
    request: Request,
    subscriptions: SubscriptionUseCaseDep,
    authorization: str = Header(default="", alias="Authorization"),
):
    """
    Handle RevenueCat webhook events.

    Returns 200 for events about other users (nothing to refresh) and for
    events that refreshed the cached status.
    """
    # ── Verify authorization ──────────────────────────────────────────────
    if not verify_webhook_authorization(authorization):
        logger.warning("Unauthorized RevenueCat webhook attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": ErrorCodes.WEBHOOK_UNAUTHORIZED,
                "message": "Invalid webhook authorization",
            },
        )

    # ── Parse payload ─────────────────────────────────────────────────────
    try:
        payload = await request.json()
        event = RevenueCatWebhookEvent.model_validate(payload.get("event") or {})
    except (ValueError, AttributeError, ValidationError) as e:
        logger.error("Invalid webhook payload: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": ErrorCodes.WEBHOOK_INVALID_PAYLOAD,
                "message": "Invalid webhook payload",
            },
        )

    logger.info(
        "Webhook received: type=%s user=%s event_id=%s",
        event.type.value,
        event.app_user_id,
        event.id,
    )

    if not event.concerns(subscriptions.get_user_id()):
        return {"received": True, "refreshed": False}

    # ── Refresh status ────────────────────────────────────────────────────
    try:
        current = await subscriptions.check_status()
    except SubscriptionError:
        logger.exception(
            "Webhook status refresh failed: type=%s event_id=%s",
            event.type.value,
            event.id,
        )
        # Return 500 so RevenueCat will retry
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error processing webhook",
        )

    return {"received": True, "refreshed": True, "is_active": current.is_active}
