"""Reviewer decision callback for pending thread actions.

A reviewer accepts or declines an action that the policy gate queued. The
target is either an explicit ledger record id or, when none is given, the
most recently updated pending record on the thread. Accepting re-resolves
the order live, executes the action and marks the record applied.
Accepting an already-applied record is a no-op reported as
``alreadyApplied``.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.orm import Session

from src.clients.shopify import ShopifyAdminClient
from src.db.models import ActionSource, ActionStatus, ActionType, MailThread, ThreadAction
from src.errors import (
    AutomationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from src.models.actions import ShippingAddressPayload
from src.services.action_handlers import dispatch
from src.services.action_keys import build_action_key
from src.services.action_ledger import ActionLedgerService, decode_payload
from src.services.action_normalizer import as_string, normalize_payload, parse_action_type
from src.services.audit_service import AuditService
from src.services.credential_resolver import resolve_shop_credentials
from src.services.proposal_text import (
    ProposalDetail,
    infer_action_type,
    order_number_from_sources,
    parse_address_from_text,
    parse_log_detail,
)

logger = logging.getLogger(__name__)

DEFAULT_PROPOSAL_STEP = "shopify_action"


def _merge_current_address(
    canonical: ShippingAddressPayload, order: dict[str, Any]
) -> ShippingAddressPayload:
    """Overlay the proposed address on the order's current shipping address."""
    current = order.get("shipping_address")
    if not isinstance(current, dict):
        return canonical
    return ShippingAddressPayload(shipping_address={**current, **canonical.shipping_address})


@dataclass
class DecisionRequest:
    """Reviewer decision input.

    Attributes:
        decision: "accepted" (default) or "declined"/"denied".
        action_id: Ledger record id.
        proposal_log_id: agent_logs id of a stored proposal.
        proposal_text: Free-text proposal sentence.
    """

    decision: str = "accepted"
    action_id: str | None = None
    proposal_log_id: str | None = None
    proposal_text: str | None = None

    @property
    def is_decline(self) -> bool:
        return as_string(self.decision).lower() in ("denied", "declined")


class DecisionService:
    """Resolves reviewer decisions against the ledger and Shopify.

    Attributes:
        db: SQLAlchemy session.
        http_client: httpx client used for live Shopify calls.
    """

    def __init__(
        self,
        db: Session,
        http_client: httpx.AsyncClient,
        api_version: str | None = None,
        timeout: float | None = None,
        encryption_key: bytes | None = None,
    ) -> None:
        self.db = db
        self.http_client = http_client
        self.api_version = api_version
        self.timeout = timeout
        self.encryption_key = encryption_key
        self.ledger = ActionLedgerService(db)
        self.audit = AuditService(db)

    def _get_thread(self, user_id: str, thread_id: str) -> MailThread:
        thread = (
            self.db.query(MailThread)
            .filter(MailThread.id == thread_id, MailThread.user_id == user_id)
            .first()
        )
        if thread is None:
            raise NotFoundError("Thread", thread_id)
        return thread

    def _find_record(
        self, user_id: str, thread_id: str, action_id: str | None
    ) -> ThreadAction | None:
        if action_id:
            return self.ledger.get(user_id, thread_id, action_id)
        return self.ledger.latest_pending(user_id, thread_id)

    def _load_proposal(
        self, thread: MailThread, request: DecisionRequest
    ) -> tuple[ProposalDetail, str]:
        """Parse the stored or inline proposal and return it with its step name."""
        if not request.proposal_log_id:
            return parse_log_detail(request.proposal_text), DEFAULT_PROPOSAL_STEP

        entry = self.audit.get_entry(request.proposal_log_id)
        if entry is None:
            raise NotFoundError("Proposal log", request.proposal_log_id)
        if entry.thread_id and entry.thread_id not in (thread.id, thread.provider_thread_id):
            raise PermissionDeniedError("Proposal does not belong to this thread.")
        step = (entry.step_name or DEFAULT_PROPOSAL_STEP).lower()
        return parse_log_detail(entry.step_detail or request.proposal_text), step

    @staticmethod
    def _overlay_record(parsed: ProposalDetail, record: ThreadAction | None) -> ProposalDetail:
        """Let the ledger record's stored fields win over the parsed proposal."""
        if record is None or not (record.detail or record.action_type or record.payload):
            return parsed
        payload = decode_payload(record.payload)
        return ProposalDetail(
            detail_text=as_string(record.detail) or parsed.detail_text,
            order_id=as_string(record.order_id) or parsed.order_id,
            order_number=as_string(record.order_number) or parsed.order_number,
            action_type=as_string(record.action_type) or parsed.action_type,
            payload=payload if record.payload else parsed.payload,
        )

    def _record_failure(
        self,
        user_id: str,
        thread: MailThread,
        action_tag: str,
        action_key: str | None,
        payload: dict[str, Any],
        detail_text: str,
        order_id: str | None,
        order_number: str | None,
        error: str,
    ) -> None:
        """Mark the record failed (when one can be keyed) and write the audit row."""
        if action_key is not None:
            self.ledger.mark_failed(
                user_id,
                thread.id,
                action_tag,
                action_key,
                payload,
                detail_text or None,
                order_id,
                error=error,
                order_number=order_number,
                source=ActionSource.manual_approval,
            )
        self.audit.log_error(
            thread.id,
            "shopify_action_failed",
            {"thread_id": thread.id, "action": action_tag, "order_id": order_id, "error": error},
        )

    def decline(
        self, thread_id: str, record: ThreadAction | None, proposal_text: str | None
    ) -> dict[str, Any]:
        if record is not None:
            record = self.ledger.mark_declined(record)
        self.audit.log_info(
            thread_id,
            "shopify_action_declined",
            {
                "thread_id": thread_id,
                "action": record.action_type if record else None,
                "detail": (record.detail if record else None) or proposal_text or None,
            },
        )
        logger.info("Declined action %s on thread %s", record.id if record else None, thread_id)
        return {"ok": True, "decision": "declined", "actionId": record.id if record else None}

    async def decide(self, user_id: str, thread_id: str, request: DecisionRequest) -> dict[str, Any]:
        """Apply a reviewer decision.

        Args:
            user_id: Acting merchant.
            thread_id: Thread the action belongs to.
            request: Decision input.

        Returns:
            Declined: ``{ok, decision, actionId}``. Accepted: ``{ok, decision,
            action, orderId, orderNumber, detail, sourceStep}``, plus
            ``alreadyApplied`` when nothing was executed.

        Raises:
            ValidationError: No action id, proposal log id or proposal text.
            NotFoundError: Unknown thread, action or proposal log.
            PermissionDeniedError: Proposal log belongs to another thread.
            ConflictError: Accepting a declined record.
            AutomationError: Credential, order or platform failure. The
                ledger record is marked failed first.
        """
        if not (request.action_id or request.proposal_log_id or request.proposal_text):
            raise ValidationError("actionId, proposalLogId or proposalText is required.")

        thread = self._get_thread(user_id, thread_id)
        record = self._find_record(user_id, thread.id, request.action_id)

        if request.is_decline:
            return self.decline(thread_id, record, request.proposal_text)

        parsed, source_step = self._load_proposal(thread, request)
        parsed = self._overlay_record(parsed, record)

        detail_text = (parsed.detail_text or request.proposal_text or "").strip()
        action_tag = (
            as_string(parsed.action_type)
            or as_string(parsed.payload.get("actionType"))
            or infer_action_type(detail_text).value
        )

        if record is not None and record.status == ActionStatus.applied.value:
            logger.info("Action %s already applied; nothing to do", record.id)
            return {
                "ok": True,
                "decision": "accepted",
                "action": action_tag,
                "orderId": parsed.order_id or record.order_id,
                "orderNumber": parsed.order_number or record.order_number,
                "detail": detail_text or None,
                "sourceStep": source_step,
                "alreadyApplied": True,
            }
        if record is not None and record.status == ActionStatus.declined.value:
            raise ConflictError("Action was declined and cannot be accepted.")

        order_number = parsed.order_number or order_number_from_sources(
            detail_text, thread.subject, thread.snippet
        )

        action_key = record.action_key if record else None
        payload: dict[str, Any] = dict(parsed.payload)
        order_id: str | None = parsed.order_id
        try:
            action_type = parse_action_type(action_tag)
            credentials = resolve_shop_credentials(self.db, user_id, key=self.encryption_key)
            client = ShopifyAdminClient(
                credentials, self.http_client, api_version=self.api_version, timeout=self.timeout
            )
            order = await client.find_order(order_id=parsed.order_id, order_number=order_number)
            order_id = str(order["id"])
            if order.get("order_number") is not None:
                order_number = str(order["order_number"])

            if action_type == ActionType.update_shipping_address and not (
                payload.get("shipping_address") or payload.get("shippingAddress")
            ):
                proposed_address = parse_address_from_text(detail_text)
                if proposed_address:
                    payload["shipping_address"] = proposed_address

            canonical = normalize_payload(action_type, payload)
            if isinstance(canonical, ShippingAddressPayload):
                canonical = _merge_current_address(canonical, order)
            payload = canonical.to_payload()
            if action_key is None:
                action_key = build_action_key(action_type, order_id, payload)

            await dispatch(client, action_type, order_id, canonical)
        except AutomationError as e:
            self._record_failure(
                user_id, thread, action_tag, action_key, payload, detail_text, order_id,
                order_number, str(e),
            )
            raise
        except Exception as e:
            logger.exception("Unexpected failure accepting %s on thread %s", action_tag, thread_id)
            self._record_failure(
                user_id, thread, action_tag, action_key, payload, detail_text, order_id,
                order_number, f"Unexpected error: {type(e).__name__}",
            )
            raise

        self.audit.log_success(
            thread_id,
            "shopify_action_applied",
            {
                "thread_id": thread_id,
                "action": action_type.value,
                "order_id": order_id,
                "order_number": order_number,
                "detail": detail_text or None,
            },
        )
        applied = self.ledger.mark_applied(
            user_id,
            thread.id,
            action_type.value,
            action_key,
            payload,
            detail_text or (record.detail if record else None),
            order_id,
            order_number=order_number,
            source=ActionSource.manual_approval,
        )
        logger.info("Accepted action %s on order %s", applied.id, order_id)
        return {
            "ok": True,
            "decision": "accepted",
            "action": action_type.value,
            "orderId": order_id,
            "orderNumber": order_number,
            "detail": detail_text or None,
            "sourceStep": source_step,
            "actionId": applied.id,
        }
