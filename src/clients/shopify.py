"""Shopify Admin API client used by the action executor.

Wraps REST and GraphQL calls against one shop with an injected
httpx.AsyncClient, so a batch owns exactly one connection pool and tests
can substitute a MockTransport. Every call carries a per-call timeout;
a timeout surfaces as PlatformTimeoutError rather than a hung batch.
"""

import json
import logging
from typing import Any

import httpx

from src.errors import OrderNotFoundError, PlatformHttpError, PlatformTimeoutError
from src.services.credential_resolver import ShopCredentials

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2024-07"
DEFAULT_TIMEOUT_SECONDS = 8.0

_ORDER_LOOKUP_FIELDS = "id,name,order_number,shipping_address"


def _error_message(payload: Any, text: str, status_code: int) -> str:
    """Pick the most useful error message from a failed response.

    Preference: ``errors`` field, then ``error`` field, then raw body text,
    then a generic status line. Non-string values are JSON-encoded.
    """
    message: Any = None
    if isinstance(payload, dict):
        message = payload.get("errors")
        if message is None:
            message = payload.get("error")
    if message is None:
        message = text or None
    if message is None:
        return f"Shopify responded with status {status_code}."
    if isinstance(message, str):
        return message
    return json.dumps(message, ensure_ascii=False)


def _order_number_matches(order: dict[str, Any], order_number: str) -> bool:
    candidate = "".join(ch for ch in str(order_number or "") if ch.isdigit())
    if not candidate:
        return False
    number_digits = "".join(ch for ch in str(order.get("order_number") or "") if ch.isdigit())
    name_digits = "".join(ch for ch in str(order.get("name") or "") if ch.isdigit())
    return number_digits == candidate or name_digits.endswith(candidate)


class ShopifyAdminClient:
    """Shopify Admin API client bound to one shop for one batch.

    Example:
        async with httpx.AsyncClient() as http:
            client = ShopifyAdminClient(credentials, http)
            order = await client.get_order("450789469")
    """

    def __init__(
        self,
        credentials: ShopCredentials,
        http_client: httpx.AsyncClient,
        api_version: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._credentials = credentials
        self._client = http_client
        self.api_version = api_version or DEFAULT_API_VERSION
        self.timeout = timeout or DEFAULT_TIMEOUT_SECONDS

    @property
    def shop_domain(self) -> str:
        return self._credentials.shop_domain

    def _get_base_url(self) -> str:
        """Construct the versioned Admin API base URL."""
        return f"https://{self._credentials.shop_domain}/admin/api/{self.api_version}"

    def _get_headers(self) -> dict[str, str]:
        return {
            "X-Shopify-Access-Token": self._credentials.access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send one REST request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path relative to the versioned base URL, e.g. "orders/1.json".
            body: JSON body. None sends no body.
            params: Query parameters.

        Returns:
            Decoded JSON (None for an empty body).

        Raises:
            PlatformTimeoutError: The call exceeded the timeout.
            PlatformHttpError: Transport failure or non-2xx status.
        """
        url = f"{self._get_base_url()}/{path.lstrip('/')}"
        try:
            response = await self._client.request(
                method,
                url,
                headers=self._get_headers(),
                json=body,
                params=params,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning("Shopify %s %s timed out after %ss", method, path, self.timeout)
            raise PlatformTimeoutError(self.timeout) from e
        except httpx.RequestError as e:
            raise PlatformHttpError(f"Shopify request failed: {type(e).__name__}") from e

        text = response.text
        try:
            payload = json.loads(text) if text else None
        except json.JSONDecodeError:
            payload = None

        logger.info("Shopify %s %s -> %d", method, path, response.status_code)
        if not response.is_success:
            raise PlatformHttpError(
                _error_message(payload, text, response.status_code),
                status_code=response.status_code,
            )
        return payload

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run a GraphQL Admin API operation and return its ``data``.

        Raises:
            PlatformHttpError: Top-level GraphQL errors, missing data, or a
                failed HTTP exchange.
        """
        payload = await self.request(
            "POST", "graphql.json", body={"query": query, "variables": variables or {}}
        )
        errors = payload.get("errors") if isinstance(payload, dict) else None
        if isinstance(errors, list) and errors:
            message = "; ".join(
                (item.get("message") if isinstance(item, dict) else None) or "GraphQL error"
                for item in errors
            )
            raise PlatformHttpError(message, status_code=400)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not data:
            raise PlatformHttpError("Shopify GraphQL returned no data.", status_code=400)
        return data

    async def get_order(self, order_id: str, fields: str | None = None) -> dict[str, Any]:
        """Fetch one order by numeric id.

        Raises:
            PlatformHttpError: Including 404 for unknown ids.
        """
        params = {"fields": fields} if fields else None
        payload = await self.request("GET", f"orders/{order_id}.json", params=params)
        return (payload or {}).get("order") or {}

    async def search_orders_by_number(self, order_number: str) -> list[dict[str, Any]]:
        """Search orders by name (``#<number>``) across all statuses."""
        payload = await self.request(
            "GET",
            "orders.json",
            params={
                "status": "any",
                "limit": 25,
                "fields": _ORDER_LOOKUP_FIELDS,
                "name": f"#{order_number}",
            },
        )
        orders = (payload or {}).get("orders")
        return orders if isinstance(orders, list) else []

    async def find_order(
        self, order_id: str | None = None, order_number: str | None = None
    ) -> dict[str, Any]:
        """Live order lookup by id, falling back to a search by number.

        The search prefers an order whose order_number or name digits match,
        else takes the first result.

        Raises:
            OrderNotFoundError: Neither lookup found an order.
        """
        if order_id:
            try:
                order = await self.get_order(order_id, fields=_ORDER_LOOKUP_FIELDS)
            except PlatformHttpError as e:
                logger.info("Order lookup by id %s failed (%s), trying number", order_id, e)
                order = {}
            if order.get("id"):
                return order

        if order_number:
            orders = await self.search_orders_by_number(order_number)
            if orders:
                for order in orders:
                    if _order_number_matches(order, order_number):
                        return order
                return orders[0]

        raise OrderNotFoundError(order_number or order_id or "this request")

    async def get_fulfillment_orders(self, order_id: str) -> list[dict[str, Any]]:
        payload = await self.request("GET", f"orders/{order_id}/fulfillment_orders.json")
        items = (payload or {}).get("fulfillment_orders")
        return items if isinstance(items, list) else []
