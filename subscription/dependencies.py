"""
Common Dependencies
===================

Injection helpers that make one ``SubscriptionUseCase`` available to
FastAPI route handlers.

Usage:
    install_subscription(app, SubscriptionUseCase(config, storefront=store))

    @router.get("/premium")
    async def premium(subscriptions: SubscriptionUseCaseDep):
        return subscriptions.get_status()
"""

from typing import Annotated

from fastapi import Depends, FastAPI, Request

from subscription.core.errors import NotConfiguredError
from subscription.services.use_case import SubscriptionUseCase

_STATE_ATTR = "subscription_use_case"


def install_subscription(app: FastAPI, use_case: SubscriptionUseCase) -> None:
    """Attach ``use_case`` to the application state."""
    setattr(app.state, _STATE_ATTR, use_case)


def get_subscription_use_case(request: Request) -> SubscriptionUseCase:
    """Resolve the installed use case, or fail as not configured."""
    use_case = getattr(request.app.state, _STATE_ATTR, None)
    if use_case is None:
        raise NotConfiguredError("No subscription use case installed on this app")
    return use_case


SubscriptionUseCaseDep = Annotated[
    SubscriptionUseCase, Depends(get_subscription_use_case)
]
