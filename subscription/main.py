"""
Subscription Service - Application Wiring
=========================================

Builds a FastAPI application that owns one ``SubscriptionUseCase`` for its
lifetime: the use case is created (and starts observing the provider
stream) on startup, and closed on shutdown.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from subscription.config import SubscriptionConfiguration, settings
from subscription.core.errors import setup_exception_handlers
from subscription.dependencies import install_subscription
from subscription.services.provider import PurchaseProvider, Storefront
from subscription.services.use_case import SubscriptionUseCase

# Configure logging for the application (root logger defaults to WARNING)
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


def create_app(
    configuration: Optional[SubscriptionConfiguration] = None,
    *,
    storefront: Optional[Storefront] = None,
    provider: Optional[PurchaseProvider] = None,
) -> FastAPI:
    """Create the application; configuration defaults to environment settings."""
    configuration = configuration or SubscriptionConfiguration.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting subscription service...")
        use_case = SubscriptionUseCase(
            configuration, provider=provider, storefront=storefront,
        )
        if not use_case.is_configured:
            logger.warning("RevenueCat is not configured; subscription calls will fail")
        install_subscription(app, use_case)

        yield

        logger.info("Shutting down subscription service...")
        await use_case.aclose()

    app = FastAPI(
        title="Subscription Service",
        version="1.0.0",
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    setup_exception_handlers(app)

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict:
        """Health check endpoint."""
        use_case = getattr(app.state, "subscription_use_case", None)
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
            "revenuecat_configured": bool(use_case and use_case.is_configured),
        }

    from subscription.api.v1 import webhooks
    app.include_router(webhooks.router, prefix="/api/v1/webhooks", tags=["Webhooks"])

    return app
