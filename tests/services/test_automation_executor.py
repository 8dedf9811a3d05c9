"""Tests for batch execution of proposed actions."""

import json

import pytest

from src.db.models import AgentLog, AutomationSettings, ShopConnection, ThreadAction
from src.models.actions import AutomationPolicy
from src.services.action_ledger import ActionLedgerService
from src.services.automation_executor import (
    STEP_APPLIED,
    STEP_FAILED,
    STEP_PENDING,
    STEP_SKIPPED,
    ExecutionContext,
    execute_automation_actions,
)
from tests.conftest import THREAD_ID, USER_ID
from tests.helpers import ShopifyTestStore

ORDER_ID = "450789469"
ORDER_PATH = f"orders/{ORDER_ID}.json"


@pytest.fixture
def ctx(db_session, http_client, shop_connection, mail_thread):
    return ExecutionContext(
        db=db_session, user_id=USER_ID, http_client=http_client, thread_id=THREAD_ID
    )


def _steps(db_session) -> list[str]:
    return [log.step_name for log in db_session.query(AgentLog).order_by(AgentLog.created_at)]


class TestAllowedActions:
    """Tests for actions the policy lets through."""

    @pytest.mark.asyncio
    async def test_applies_and_records(self, ctx, db_session, shopify_store):
        results = await execute_automation_actions(
            ctx, [{"type": "add_tag", "orderId": ORDER_ID, "payload": {"tag": "vip"}}]
        )

        (result,) = results
        assert result.ok is True
        assert result.status == "success"
        assert result.order_id == ORDER_ID
        assert result.detail == 'Added tag "vip".'
        assert result.action_id

        record = db_session.query(ThreadAction).one()
        assert record.status == "applied"
        assert record.applied_at
        assert _steps(db_session) == [STEP_APPLIED]
        assert shopify_store.orders[ORDER_ID]["tags"] == "vip"

    @pytest.mark.asyncio
    async def test_order_name_resolved_through_map(self, ctx, shopify_store):
        results = await execute_automation_actions(
            ctx,
            [{"type": "add_note", "orderId": "#1001", "payload": {"note": "Call first"}}],
            order_id_map={"1001": ORDER_ID},
        )
        assert results[0].order_id == ORDER_ID
        assert shopify_store.orders[ORDER_ID]["note"] == "Call first"

    @pytest.mark.asyncio
    async def test_refund_runs_when_automatic_refunds_enabled(self, ctx, db_session, shopify_store):
        shopify_store.add_order(1001, order_number=1001)
        results = await execute_automation_actions(
            ctx,
            [
                {
                    "type": "refund_order",
                    "orderId": "1001",
                    "payload": {"amount": 49.5, "currency": "DKK"},
                }
            ],
            policy={"automatic_refunds": True},
        )

        (result,) = results
        assert result.ok is True
        assert result.status == "success"
        assert result.detail == "Refunded 49.50."
        (call,) = shopify_store.calls_to("POST", "orders/1001/refunds.json")
        assert call.body["refund"]["transactions"] == [
            {"kind": "refund", "amount": "49.50", "currency": "DKK"}
        ]
        assert db_session.query(ThreadAction).one().status == "applied"

    @pytest.mark.asyncio
    async def test_two_tags_in_one_batch_keep_both(self, ctx, shopify_store):
        results = await execute_automation_actions(
            ctx,
            [
                {"type": "add_tag", "orderId": ORDER_ID, "payload": {"tag": "a"}},
                {"type": "add_tag", "orderId": ORDER_ID, "payload": {"tag": "b"}},
            ],
        )
        assert [r.status for r in results] == ["success", "success"]
        assert shopify_store.orders[ORDER_ID]["tags"] == "a, b"

    @pytest.mark.asyncio
    async def test_resubmitting_applied_action_makes_no_calls(self, ctx, db_session, shopify_store):
        action = {"type": "add_tag", "orderId": ORDER_ID, "payload": {"tag": "vip"}}
        first = await execute_automation_actions(ctx, [action])
        shopify_store.calls.clear()

        second = await execute_automation_actions(ctx, [action])

        assert second[0].status == "success"
        assert second[0].action_id == first[0].action_id
        assert shopify_store.calls == []
        assert db_session.query(ThreadAction).count() == 1
        assert _steps(db_session) == [STEP_APPLIED, STEP_SKIPPED]


class TestPolicyGate:
    """Tests for actions queued for approval."""

    @pytest.mark.asyncio
    async def test_cancel_denied_is_queued(self, ctx, db_session, shopify_store):
        results = await execute_automation_actions(
            ctx,
            [{"type": "cancel_order", "orderId": ORDER_ID, "payload": {}}],
            policy=AutomationPolicy(cancel_orders=False),
        )

        (result,) = results
        assert result.ok is False
        assert result.status == "pending_approval"
        assert result.detail == "Cancelled order."
        assert result.error == "Automation does not allow this action: cancellations are disabled."
        assert shopify_store.calls == []

        record = db_session.query(ThreadAction).one()
        assert record.status == "pending"
        assert record.id == result.action_id
        assert _steps(db_session) == [STEP_PENDING]

    @pytest.mark.asyncio
    async def test_refund_gated_by_default(self, ctx, shopify_store):
        results = await execute_automation_actions(
            ctx, [{"type": "refund_order", "orderId": ORDER_ID, "payload": {"amount": 10}}]
        )
        assert results[0].status == "pending_approval"
        assert shopify_store.calls_to("POST", f"orders/{ORDER_ID}/refunds.json") == []

    @pytest.mark.asyncio
    async def test_stored_settings_are_used(self, ctx, db_session, shopify_store):
        db_session.add(AutomationSettings(user_id=USER_ID, order_updates=False))
        db_session.commit()
        results = await execute_automation_actions(
            ctx, [{"type": "add_tag", "orderId": ORDER_ID, "payload": {"tag": "vip"}}]
        )
        assert results[0].status == "pending_approval"

    @pytest.mark.asyncio
    async def test_repeated_proposal_keeps_one_pending_row(self, ctx, db_session):
        action = {"type": "cancel_order", "orderId": ORDER_ID, "payload": {}}
        policy = {"cancel_orders": False}
        first = await execute_automation_actions(ctx, [action], policy=policy)
        second = await execute_automation_actions(ctx, [action], policy=policy)
        assert first[0].action_id == second[0].action_id
        assert db_session.query(ThreadAction).count() == 1

    @pytest.mark.asyncio
    async def test_declined_action_is_not_retried(self, ctx, db_session, shopify_store):
        action = {"type": "cancel_order", "orderId": ORDER_ID, "payload": {}}
        queued = await execute_automation_actions(
            ctx, [action], policy={"cancel_orders": False}
        )
        ledger = ActionLedgerService(db_session)
        ledger.mark_declined(ledger.get(USER_ID, THREAD_ID, queued[0].action_id))

        results = await execute_automation_actions(ctx, [action])

        assert results[0].status == "error"
        assert "declined" in results[0].error
        assert shopify_store.calls == []


class TestFailures:
    """Tests for per-action and batch-wide failures."""

    @pytest.mark.asyncio
    async def test_invalid_payload_fails_only_that_action(self, ctx, db_session, shopify_store):
        results = await execute_automation_actions(
            ctx,
            [
                {"type": "add_tag", "orderId": ORDER_ID, "payload": {}},
                {"type": "add_note", "orderId": ORDER_ID, "payload": {"note": "ok"}},
            ],
        )
        assert [r.status for r in results] == ["error", "success"]
        assert results[0].error == "tag must be provided."
        # No key could be derived, so only the success is in the ledger
        assert db_session.query(ThreadAction).count() == 1

    @pytest.mark.asyncio
    async def test_unresolvable_order(self, ctx):
        results = await execute_automation_actions(
            ctx, [{"type": "add_tag", "orderId": "not-an-order", "payload": {"tag": "x"}}]
        )
        assert results[0].status == "error"
        assert results[0].error == "Could not resolve order id from 'not-an-order'."
        assert results[0].order_id == "not-an-order"

    @pytest.mark.asyncio
    async def test_unsupported_type(self, ctx):
        results = await execute_automation_actions(
            ctx, [{"type": "teleport_order", "orderId": ORDER_ID}]
        )
        assert results[0].type == "teleport_order"
        assert results[0].error == "Unsupported action type: teleport_order"

    @pytest.mark.asyncio
    async def test_platform_error_marks_record_failed(self, ctx, db_session, shopify_store):
        shopify_store.fail(
            "POST", f"orders/{ORDER_ID}/cancel.json", 422, {"errors": "Order already cancelled"}
        )
        results = await execute_automation_actions(
            ctx, [{"type": "cancel_order", "orderId": ORDER_ID, "payload": {}}]
        )

        assert results[0].status == "error"
        assert results[0].error == "Order already cancelled"
        record = db_session.query(ThreadAction).one()
        assert record.status == "failed"
        assert record.error == "Order already cancelled"
        log = db_session.query(AgentLog).one()
        assert log.step_name == STEP_FAILED
        assert json.loads(log.step_detail)["error"] == "Order already cancelled"

    @pytest.mark.asyncio
    async def test_timeout_is_an_error_result(self, ctx, shopify_store):
        shopify_store.time_out("PUT", ORDER_PATH)
        results = await execute_automation_actions(
            ctx, [{"type": "add_note", "orderId": ORDER_ID, "payload": {"note": "x"}}]
        )
        assert results[0].status == "error"
        assert "did not respond" in results[0].error

    @pytest.mark.asyncio
    async def test_missing_credentials_fail_every_action(self, db_session, http_client, mail_thread):
        ctx = ExecutionContext(
            db=db_session, user_id=USER_ID, http_client=http_client, thread_id=THREAD_ID
        )
        results = await execute_automation_actions(
            ctx,
            [
                {"type": "add_tag", "orderId": ORDER_ID, "payload": {"tag": "a"}},
                {"type": "cancel_order", "orderId": ORDER_ID},
            ],
        )
        assert [r.error for r in results] == ["Shopify is not connected."] * 2
        assert [r.type for r in results] == ["add_tag", "cancel_order"]
        assert db_session.query(ThreadAction).count() == 0

    @pytest.mark.asyncio
    async def test_uninstalled_connection_counts_as_missing(
        self, ctx, db_session, shop_connection
    ):
        shop_connection.uninstalled_at = "2026-02-01T00:00:00+00:00"
        db_session.commit()
        results = await execute_automation_actions(
            ctx, [{"type": "add_tag", "orderId": ORDER_ID, "payload": {"tag": "a"}}]
        )
        assert results[0].error == "Shopify is not connected."


class TestBatchShape:
    """Tests for batch-level input handling."""

    @pytest.mark.asyncio
    async def test_empty_batch(self, ctx, shopify_store):
        assert await execute_automation_actions(ctx, []) == []
        assert shopify_store.calls == []

    @pytest.mark.asyncio
    async def test_entries_without_type_are_skipped(self, ctx):
        results = await execute_automation_actions(
            ctx,
            [
                "not a dict",
                {"orderId": ORDER_ID},
                {"type": "  ", "orderId": ORDER_ID},
                {"type": "add_tag", "orderId": ORDER_ID, "payload": {"tag": "vip"}},
            ],
        )
        assert [r.type for r in results] == ["add_tag"]

    @pytest.mark.asyncio
    async def test_without_thread_nothing_is_recorded_in_ledger(
        self, db_session, http_client, shop_connection
    ):
        ctx = ExecutionContext(db=db_session, user_id=USER_ID, http_client=http_client)
        results = await execute_automation_actions(
            ctx, [{"type": "add_tag", "orderId": ORDER_ID, "payload": {"tag": "vip"}}]
        )
        assert results[0].status == "success"
        assert results[0].action_id is None
        assert db_session.query(ThreadAction).count() == 0

    @pytest.mark.asyncio
    async def test_workspace_connection_is_preferred(self, db_session, shop_connection):
        workspace_store = ShopifyTestStore(shop_domain="other-store.myshopify.com")
        workspace_store.add_order(ORDER_ID)
        db_session.add(
            ShopConnection(
                owner_user_id="someone-else",
                workspace_id="ws-1",
                platform="shopify",
                shop_domain="other-store.myshopify.com",
                access_token_encrypted=shop_connection.access_token_encrypted,
                created_at="2026-01-02T00:00:00+00:00",
            )
        )
        db_session.commit()
        ctx = ExecutionContext(
            db=db_session,
            user_id=USER_ID,
            http_client=workspace_store.http_client(),
            workspace_id="ws-1",
        )
        results = await execute_automation_actions(
            ctx, [{"type": "add_note", "orderId": ORDER_ID, "payload": {"note": "x"}}]
        )
        assert results[0].status == "success"
        assert workspace_store.orders[ORDER_ID]["note"] == "x"
