"""Test helper utilities."""

from tests.helpers.shopify_test_store import ShopifyCall, ShopifyTestStore

__all__ = [
    "ShopifyCall",
    "ShopifyTestStore",
]
