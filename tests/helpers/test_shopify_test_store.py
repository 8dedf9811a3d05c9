"""Tests for the ShopifyTestStore helper."""

import httpx
import pytest

from tests.helpers.shopify_test_store import ShopifyTestStore

BASE = "https://demo-store.myshopify.com/admin/api/2024-07"


@pytest.fixture
def store():
    store = ShopifyTestStore()
    store.add_order(450789469, order_number=1001, email="ada@example.com")
    return store


class TestRest:
    """Tests for the REST endpoints the handlers use."""

    @pytest.mark.asyncio
    async def test_get_order_and_record_call(self, store):
        async with store.http_client() as client:
            response = await client.get(f"{BASE}/orders/450789469.json", params={"fields": "id"})

        assert response.status_code == 200
        assert response.json()["order"]["name"] == "#1001"
        (call,) = store.calls
        assert call.method == "GET"
        assert call.path == "orders/450789469.json"
        assert call.params == {"fields": "id"}

    @pytest.mark.asyncio
    async def test_put_updates_state(self, store):
        async with store.http_client() as client:
            await client.put(
                f"{BASE}/orders/450789469.json",
                json={"order": {"id": 450789469, "tags": "vip"}},
            )
        assert store.orders["450789469"]["tags"] == "vip"

    @pytest.mark.asyncio
    async def test_search_by_name(self, store):
        async with store.http_client() as client:
            response = await client.get(f"{BASE}/orders.json", params={"name": "#1001"})
        assert [o["id"] for o in response.json()["orders"]] == [450789469]

    @pytest.mark.asyncio
    async def test_unknown_order_is_404(self, store):
        async with store.http_client() as client:
            response = await client.get(f"{BASE}/orders/1.json")
        assert response.status_code == 404


class TestFailureInjection:
    """Tests for scripted failures."""

    @pytest.mark.asyncio
    async def test_fail(self, store):
        store.fail("POST", "orders/450789469/cancel.json", 422, {"errors": "Cannot cancel"})
        async with store.http_client() as client:
            response = await client.post(f"{BASE}/orders/450789469/cancel.json", json={})
        assert response.status_code == 422
        assert response.json() == {"errors": "Cannot cancel"}
        assert "cancelled_at" not in store.orders["450789469"]

    @pytest.mark.asyncio
    async def test_time_out(self, store):
        store.time_out("GET", "orders/450789469.json")
        async with store.http_client() as client:
            with pytest.raises(httpx.ReadTimeout):
                await client.get(f"{BASE}/orders/450789469.json")


class TestGraphql:
    """Tests for the GraphQL endpoint."""

    @pytest.mark.asyncio
    async def test_records_operation_names(self, store):
        async with store.http_client() as client:
            response = await client.post(
                f"{BASE}/graphql.json",
                json={"query": "mutation Begin($id: ID!) { orderEditBegin(id: $id) { userErrors { message } } }"},
            )
        assert store.graphql_operations == ["orderEditBegin"]
        begin = response.json()["data"]["orderEditBegin"]
        assert begin["calculatedOrder"]["id"] == "gid://shopify/CalculatedOrder/77"

    @pytest.mark.asyncio
    async def test_override(self, store):
        store.graphql_response(
            "orderEditSetQuantity", {"orderEditSetQuantity": {"userErrors": [{"message": "nope"}]}}
        )
        async with store.http_client() as client:
            response = await client.post(
                f"{BASE}/graphql.json",
                json={"query": "mutation { orderEditSetQuantity(id: 1) { userErrors { message } } }"},
            )
        assert response.json()["data"]["orderEditSetQuantity"]["userErrors"] == [{"message": "nope"}]
