"""Commerce platform API clients."""

from src.clients.shopify import DEFAULT_API_VERSION, DEFAULT_TIMEOUT_SECONDS, ShopifyAdminClient

__all__ = ["ShopifyAdminClient", "DEFAULT_API_VERSION", "DEFAULT_TIMEOUT_SECONDS"]
