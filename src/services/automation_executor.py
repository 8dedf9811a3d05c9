"""Sequential, policy-gated execution of proposed order actions.

This is the canonical execution path. Both the batch endpoint and the CLI
``actions run`` command call execute_automation_actions.

Per action: resolve the order id, normalize the payload, derive the action
key and summary, consult the ledger, then either queue the action for
approval (policy denied) or execute it against Shopify and record the
outcome. Actions run strictly one after another so a later action sees the
side effects of an earlier one. Only a credential failure aborts the
batch; every other error stays with its action.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from sqlalchemy.orm import Session

from src.clients.shopify import ShopifyAdminClient
from src.db.models import ActionStatus, ThreadAction
from src.errors import AutomationError
from src.models.actions import AutomationPolicy, ExecutionResult, ProposedAction
from src.services.action_handlers import dispatch
from src.services.action_keys import build_action_key
from src.services.action_ledger import ActionLedgerService
from src.services.action_normalizer import normalize_action
from src.services.action_summary import summarize_action
from src.services.audit_service import AuditService
from src.services.credential_resolver import ShopCredentials, resolve_shop_credentials
from src.services.order_resolver import resolve_order_id
from src.services.policy_gate import check_policy, load_automation_policy

logger = logging.getLogger(__name__)

STEP_APPLIED = "shopify_action_applied"
STEP_PENDING = "shopify_action_pending"
STEP_FAILED = "shopify_action_failed"
STEP_SKIPPED = "shopify_action_skipped"


@dataclass
class ExecutionContext:
    """Per-batch collaborators. Lives for one request, never shared.

    Attributes:
        db: Database session for settings, credentials, ledger and audit.
        user_id: Merchant (owner) user id.
        http_client: Shared httpx client for every Shopify call in the batch.
        thread_id: Thread the actions belong to. Ledger writes need it.
        workspace_id: Optional workspace scope for credential lookup.
        api_version: Shopify Admin API version override.
        timeout: Per-call timeout in seconds.
        encryption_key: Token encryption key override.
        default_policy: Policy for merchants without stored settings.
    """

    db: Session
    user_id: str
    http_client: httpx.AsyncClient
    thread_id: str | None = None
    workspace_id: str | None = None
    api_version: str | None = None
    timeout: float | None = None
    encryption_key: bytes | None = field(default=None, repr=False)
    default_policy: AutomationPolicy | None = None


@dataclass
class _Prepared:
    proposed: ProposedAction
    order_id: str
    payload: dict[str, Any]
    action_key: str
    detail: str


def _raw_order_ref(raw: dict[str, Any]) -> str | None:
    for key in ("orderId", "order_id", "orderRef"):
        if raw.get(key) is not None:
            return str(raw[key])
    return None


class AutomationExecutor:
    """Runs one batch of actions for one merchant."""

    def __init__(
        self,
        ctx: ExecutionContext,
        client: ShopifyAdminClient,
        policy: AutomationPolicy,
        order_id_map: dict[str, Any] | None = None,
    ) -> None:
        self.ctx = ctx
        self.client = client
        self.policy = policy
        self.order_id_map = order_id_map or {}
        self.audit = AuditService(ctx.db)
        self.ledger = ActionLedgerService(ctx.db) if ctx.thread_id else None

    def _prepare(self, raw: dict[str, Any]) -> _Prepared:
        order_id = resolve_order_id(_raw_order_ref(raw), self.order_id_map)
        proposed = normalize_action(raw)
        payload = proposed.payload.to_payload()
        return _Prepared(
            proposed=proposed,
            order_id=order_id,
            payload=payload,
            action_key=build_action_key(proposed.type, order_id, payload),
            detail=summarize_action(proposed.type, proposed.payload),
        )

    def _audit_details(self, action_type: str, order_id: str | None, **extra: Any) -> dict[str, Any]:
        details = {"thread_id": self.ctx.thread_id, "action": action_type, "order_id": order_id}
        details.update({k: v for k, v in extra.items() if v is not None})
        return details

    async def run_one(self, raw: dict[str, Any]) -> ExecutionResult:
        """Execute one raw action and return exactly one result."""
        action_type = raw["type"].strip()
        prepared: _Prepared | None = None
        try:
            prepared = self._prepare(raw)
            action_type = prepared.proposed.type.value

            existing = (
                self.ledger.find_by_key(
                    self.ctx.user_id, self.ctx.thread_id, prepared.action_key
                )
                if self.ledger
                else None
            )
            if existing is not None and existing.status == ActionStatus.applied.value:
                return self._already_applied(action_type, prepared, existing)
            if existing is not None and existing.status == ActionStatus.declined.value:
                return self._declined(action_type, prepared, existing)

            decision = check_policy(prepared.proposed.type, self.policy)
            if not decision.allowed:
                return self._queue_for_approval(action_type, prepared, decision.reason or "")

            await dispatch(
                self.client, prepared.proposed.type, prepared.order_id, prepared.proposed.payload
            )
        except AutomationError as e:
            return self._failed(action_type, raw, prepared, str(e))
        except Exception as e:
            logger.exception("Unexpected failure executing %s: %s", action_type, e)
            return self._failed(action_type, raw, prepared, f"Unexpected error: {type(e).__name__}")

        return self._applied(action_type, prepared)

    # Outcome helpers

    def _already_applied(
        self, action_type: str, prepared: _Prepared, record: ThreadAction
    ) -> ExecutionResult:
        logger.info("Action %s on order %s already applied; skipping", action_type, prepared.order_id)
        self.audit.log_info(
            self.ctx.thread_id,
            STEP_SKIPPED,
            self._audit_details(action_type, prepared.order_id, reason="already_applied"),
        )
        return ExecutionResult(
            type=action_type,
            ok=True,
            status="success",
            order_id=prepared.order_id,
            detail=record.detail or prepared.detail,
            action_id=record.id,
        )

    def _declined(
        self, action_type: str, prepared: _Prepared, record: ThreadAction
    ) -> ExecutionResult:
        message = "Action was declined by a reviewer and will not be retried."
        self.audit.log_info(
            self.ctx.thread_id,
            STEP_SKIPPED,
            self._audit_details(action_type, prepared.order_id, reason="declined"),
        )
        return ExecutionResult(
            type=action_type,
            ok=False,
            status="error",
            order_id=prepared.order_id,
            detail=record.detail or prepared.detail,
            error=message,
            action_id=record.id,
        )

    def _queue_for_approval(
        self, action_type: str, prepared: _Prepared, reason: str
    ) -> ExecutionResult:
        record = None
        if self.ledger:
            record = self.ledger.record_pending(
                self.ctx.user_id,
                self.ctx.thread_id,
                action_type,
                prepared.action_key,
                prepared.payload,
                prepared.detail,
                prepared.order_id,
            )
        self.audit.log_info(
            self.ctx.thread_id,
            STEP_PENDING,
            self._audit_details(action_type, prepared.order_id, detail=prepared.detail, reason=reason),
        )
        return ExecutionResult(
            type=action_type,
            ok=False,
            status="pending_approval",
            order_id=prepared.order_id,
            detail=prepared.detail,
            error=f"Automation does not allow this action: {reason}",
            action_id=record.id if record else None,
        )

    def _applied(self, action_type: str, prepared: _Prepared) -> ExecutionResult:
        record = None
        if self.ledger:
            record = self.ledger.mark_applied(
                self.ctx.user_id,
                self.ctx.thread_id,
                action_type,
                prepared.action_key,
                prepared.payload,
                prepared.detail,
                prepared.order_id,
            )
        self.audit.log_success(
            self.ctx.thread_id,
            STEP_APPLIED,
            self._audit_details(action_type, prepared.order_id, detail=prepared.detail),
        )
        return ExecutionResult(
            type=action_type,
            ok=True,
            status="success",
            order_id=prepared.order_id,
            detail=prepared.detail,
            action_id=record.id if record else None,
        )

    def _failed(
        self,
        action_type: str,
        raw: dict[str, Any],
        prepared: _Prepared | None,
        message: str,
    ) -> ExecutionResult:
        order_id = prepared.order_id if prepared else _raw_order_ref(raw)
        logger.warning("Action %s on order %s failed: %s", action_type, order_id, message)
        record = None
        # Errors raised before the key exists are audit-only
        if self.ledger and prepared is not None:
            record = self.ledger.mark_failed(
                self.ctx.user_id,
                self.ctx.thread_id,
                action_type,
                prepared.action_key,
                prepared.payload,
                prepared.detail,
                prepared.order_id,
                error=message,
            )
        self.audit.log_error(
            self.ctx.thread_id,
            STEP_FAILED,
            self._audit_details(action_type, order_id, error=message),
        )
        return ExecutionResult(
            type=action_type,
            ok=False,
            status="error",
            order_id=order_id,
            error=message,
            action_id=record.id if record else None,
        )


async def execute_automation_actions(
    ctx: ExecutionContext,
    actions: list[Any],
    policy: AutomationPolicy | dict[str, Any] | None = None,
    order_id_map: dict[str, Any] | None = None,
) -> list[ExecutionResult]:
    """Execute a batch of proposed actions sequentially.

    Args:
        ctx: Per-batch execution context.
        actions: Raw actions ``{type, orderId, payload}``. Entries without a
            string type are skipped.
        policy: Explicit automation policy. Defaults to the stored settings.
        order_id_map: Caller-built order reference map.

    Returns:
        One ExecutionResult per executed action. When credentials cannot be
        resolved every action fails with the same error.
    """
    if not actions:
        return []

    audit = AuditService(ctx.db)
    try:
        credentials: ShopCredentials = resolve_shop_credentials(
            ctx.db, ctx.user_id, ctx.workspace_id, key=ctx.encryption_key
        )
    except AutomationError as e:
        logger.error("Credential resolution failed for user %s: %s", ctx.user_id, e)
        results = []
        for raw in actions:
            action_type = raw.get("type") if isinstance(raw, dict) else None
            action_type = action_type if isinstance(action_type, str) and action_type else "unknown"
            audit.log_error(
                ctx.thread_id,
                STEP_FAILED,
                {"thread_id": ctx.thread_id, "action": action_type, "error": str(e)},
            )
            results.append(
                ExecutionResult(type=action_type, ok=False, status="error", error=str(e))
            )
        return results

    resolved_policy = load_automation_policy(ctx.db, ctx.user_id, policy, ctx.default_policy)
    client = ShopifyAdminClient(
        credentials, ctx.http_client, api_version=ctx.api_version, timeout=ctx.timeout
    )
    executor = AutomationExecutor(ctx, client, resolved_policy, order_id_map)
    logger.info(
        "Executing %d action(s) for user %s on %s", len(actions), ctx.user_id, credentials.shop_domain
    )

    results: list[ExecutionResult] = []
    for raw in actions:
        if not isinstance(raw, dict) or not isinstance(raw.get("type"), str) or not raw["type"].strip():
            logger.info("Skipping action without a type: %r", raw)
            continue
        results.append(await executor.run_one(raw))
    return results
