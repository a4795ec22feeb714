"""
RevenueCat Service
==================

Purchase provider backed by the RevenueCat REST API (v1).

Handles:
- Customer info fetching (``GET /subscribers/{id}``)
- Offerings fetching, joined with store product metadata
- Purchase and restore receipt posting (``POST /receipts``)
- Identity switching (``POST /subscribers/identify``) and logout
- Subscriber attributes (``POST /subscribers/{id}/attributes``)
- A customer-info push stream fed by every fetch that changes state

The native store side (product lookup, purchase sheet, receipts) is
delegated to an injected ``Storefront``.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, AsyncIterator, Optional
from urllib.parse import quote

import httpx

from subscription.config import settings
from subscription.core.errors import RevenueCatAPIError, StoreProductsUnavailableError
from subscription.schemas.revenuecat import (
    CustomerInfo,
    Offerings,
    PackageType,
    ProviderOffering,
    ProviderPackage,
    PurchaseResult,
    parse_rc_datetime,
)
from subscription.services.provider import Storefront

logger = logging.getLogger(__name__)

ANONYMOUS_ID_PREFIX = "$RCAnonymousID:"

# Pushed to every listener queue when the provider closes.
_STREAM_END = object()


def generate_anonymous_id() -> str:
    return f"{ANONYMOUS_ID_PREFIX}{uuid.uuid4().hex}"


def is_anonymous(app_user_id: str) -> bool:
    return app_user_id.startswith(ANONYMOUS_ID_PREFIX)


class RevenueCatProvider:
    """RevenueCat REST client implementing ``PurchaseProvider``."""

    def __init__(
        self,
        api_key: str,
        storefront: Storefront,
        *,
        app_user_id: Optional[str] = None,
        base_url: Optional[str] = None,
        platform: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.storefront = storefront
        self.base_url = (base_url or settings.REVENUECAT_BASE_URL).rstrip("/")
        self.platform = platform or settings.REVENUECAT_PLATFORM
        self._app_user_id = app_user_id or generate_anonymous_id()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.REVENUECAT_TIMEOUT_SECONDS,
        )
        self._customer_info: Optional[CustomerInfo] = None
        self._listeners: set[asyncio.Queue] = set()
        self._closed = False

    @property
    def app_user_id(self) -> str:
        return self._app_user_id

    # -------------------------------------------------------------------------
    # RevenueCat REST API
    # -------------------------------------------------------------------------

    def _get_headers(self) -> dict[str, str]:
        """Common headers for RevenueCat API calls."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Platform": self.platform,
        }

    def _subscriber_path(self, app_user_id: Optional[str] = None) -> str:
        return f"/subscribers/{quote(app_user_id or self._app_user_id, safe='')}"

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """Send a request, raising ``RevenueCatAPIError`` on non-2xx answers."""
        response = await self._client.request(
            method,
            f"{self.base_url}{path}",
            headers=self._get_headers(),
            json=json,
        )

        if response.is_success:
            return response

        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("message") or response.text[:200]

        logger.error(
            "RevenueCat API returned status %d for %s %s: %s",
            response.status_code,
            method,
            path,
            message,
        )
        raise RevenueCatAPIError(response.status_code, message, body.get("code"))

    def _customer_info_from(self, data: dict[str, Any]) -> CustomerInfo:
        return CustomerInfo.from_subscriber(
            data.get("subscriber") or {},
            request_date=parse_rc_datetime(data.get("request_date")),
        )

    # -------------------------------------------------------------------------
    # Customer Info
    # -------------------------------------------------------------------------

    async def _fetch_customer_info(self, app_user_id: str) -> CustomerInfo:
        response = await self._request("GET", self._subscriber_path(app_user_id))
        return self._customer_info_from(response.json())

    async def get_customer_info(self) -> CustomerInfo:
        info = await self._fetch_customer_info(self._app_user_id)
        self._publish(info)
        return info

    # -------------------------------------------------------------------------
    # Offerings
    # -------------------------------------------------------------------------

    async def get_offerings(self) -> Offerings:
        """
        Fetch offerings and join them with store product metadata.

        Packages whose product the store does not know are dropped. If the
        store knows none of the requested products, the offerings are
        unusable and ``StoreProductsUnavailableError`` is raised.
        """
        response = await self._request(
            "GET", f"{self._subscriber_path()}/offerings"
        )
        data = response.json()
        raw_offerings = data.get("offerings") or []
        current_id = data.get("current_offering_id")

        product_ids = sorted({
            package["platform_product_identifier"]
            for offering in raw_offerings
            for package in offering.get("packages") or []
            if package.get("platform_product_identifier")
        })
        if not product_ids:
            return Offerings(current_offering_id=current_id)

        products = {
            product.identifier: product
            for product in await self.storefront.get_products(product_ids)
        }
        if not products:
            raise StoreProductsUnavailableError(current_id or "", product_ids)

        offerings: dict[str, ProviderOffering] = {}
        for offering in raw_offerings:
            identifier = offering["identifier"]
            packages = []
            for package in offering.get("packages") or []:
                product = products.get(package.get("platform_product_identifier"))
                if product is None:
                    logger.warning(
                        "Store product %s missing for package %s in offering %s",
                        package.get("platform_product_identifier"),
                        package.get("identifier"),
                        identifier,
                    )
                    continue
                packages.append(
                    ProviderPackage(
                        identifier=package["identifier"],
                        package_type=PackageType.from_identifier(package["identifier"]),
                        offering_identifier=identifier,
                        store_product=product,
                    )
                )
            offerings[identifier] = ProviderOffering(
                identifier=identifier,
                description=offering.get("description") or "",
                available_packages=tuple(packages),
            )

        return Offerings(current_offering_id=current_id, all=offerings)

    # -------------------------------------------------------------------------
    # Purchase / Restore
    # -------------------------------------------------------------------------

    async def _post_receipt(
        self,
        fetch_token: str,
        *,
        is_restore: bool,
        package: Optional[ProviderPackage] = None,
    ) -> CustomerInfo:
        body: dict[str, Any] = {
            "app_user_id": self._app_user_id,
            "fetch_token": fetch_token,
            "is_restore": is_restore,
        }
        if package is not None:
            product = package.store_product
            body.update({
                "product_id": product.identifier,
                "presented_offering_identifier": package.offering_identifier,
                "price": str(product.price),
                "currency": product.currency_code,
            })

        response = await self._request("POST", "/receipts", json=body)
        info = self._customer_info_from(response.json())
        self._publish(info)
        return info

    async def purchase(self, package: ProviderPackage) -> PurchaseResult:
        transaction = await self.storefront.purchase(package.store_product)
        if transaction is None:
            logger.info("Purchase sheet dismissed for package %s", package.identifier)
            return PurchaseResult(user_cancelled=True)

        info = await self._post_receipt(
            transaction.fetch_token, is_restore=False, package=package,
        )
        logger.info(
            "Purchase posted: user=%s package=%s product=%s",
            self._app_user_id,
            package.identifier,
            transaction.product_identifier,
        )
        return PurchaseResult(customer_info=info, transaction=transaction)

    async def restore_purchases(self) -> CustomerInfo:
        receipt = await self.storefront.restore()
        if not receipt:
            logger.info("No store receipt to restore for user=%s", self._app_user_id)
            return await self.get_customer_info()
        return await self._post_receipt(receipt, is_restore=True)

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    async def log_in(self, app_user_id: str) -> tuple[CustomerInfo, bool]:
        if app_user_id == self._app_user_id:
            return await self.get_customer_info(), False

        response = await self._request(
            "POST",
            "/subscribers/identify",
            json={
                "app_user_id": self._app_user_id,
                "new_app_user_id": app_user_id,
            },
        )
        previous = self._app_user_id
        self._app_user_id = app_user_id
        info = self._customer_info_from(response.json())
        self._publish(info)

        created = response.status_code == 201
        logger.info(
            "RevenueCat identity switched: %s -> %s (created=%s)",
            previous,
            app_user_id,
            created,
        )
        return info, created

    async def log_out(self) -> CustomerInfo:
        """Switch to a fresh anonymous id once its subscriber has been fetched."""
        anonymous_id = generate_anonymous_id()
        info = await self._fetch_customer_info(anonymous_id)

        previous, self._app_user_id = self._app_user_id, anonymous_id
        logger.info("RevenueCat logged out: %s -> %s", previous, anonymous_id)
        self._publish(info)
        return info

    async def set_attributes(self, attributes: dict[str, Optional[str]]) -> None:
        updated_at_ms = int(time.time() * 1000)
        await self._request(
            "POST",
            f"{self._subscriber_path()}/attributes",
            json={
                "attributes": {
                    key: {"value": value, "updated_at_ms": updated_at_ms}
                    for key, value in attributes.items()
                }
            },
        )

    # -------------------------------------------------------------------------
    # Push Stream
    # -------------------------------------------------------------------------

    def _publish(self, info: CustomerInfo) -> None:
        """Remember ``info`` and push it to listeners if the state changed."""
        changed = not info.same_state(self._customer_info)
        self._customer_info = info
        if not changed:
            return
        for queue in self._listeners:
            queue.put_nowait(info)

    async def customer_info_stream(self) -> AsyncIterator[CustomerInfo]:
        if self._closed:
            return

        queue: asyncio.Queue = asyncio.Queue()
        self._listeners.add(queue)
        logger.debug("Customer info listener added (%d active)", len(self._listeners))
        try:
            if self._customer_info is not None:
                yield self._customer_info
            while True:
                item = await queue.get()
                if item is _STREAM_END:
                    return
                yield item
        finally:
            self._listeners.discard(queue)
            logger.debug(
                "Customer info listener removed (%d active)", len(self._listeners)
            )

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def close(self) -> None:
        """End every open stream and release the HTTP client."""
        if self._closed:
            return
        self._closed = True
        for queue in self._listeners:
            queue.put_nowait(_STREAM_END)
        if self._owns_client:
            await self._client.aclose()


__all__ = [
    "ANONYMOUS_ID_PREFIX",
    "RevenueCatProvider",
    "generate_anonymous_id",
    "is_anonymous",
]
