"""Per-merchant automation policy gate.

Decides whether an action type may execute autonomously or must be queued
for human approval. The mapping from action type to governing toggle is a
fixed table; only the toggles themselves are configurable.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from src.db.models import ActionType, AutomationSettings
from src.models.actions import AutomationPolicy

logger = logging.getLogger(__name__)

# Action type -> (policy flag, reason shown when the flag is off)
POLICY_TABLE: dict[ActionType, tuple[str, str]] = {
    ActionType.update_shipping_address: ("order_updates", "order updates are disabled."),
    ActionType.change_shipping_method: ("order_updates", "order updates are disabled."),
    ActionType.hold_or_release_fulfillment: ("order_updates", "order updates are disabled."),
    ActionType.edit_line_items: ("order_updates", "order updates are disabled."),
    ActionType.update_customer_contact: ("order_updates", "order updates are disabled."),
    ActionType.resend_confirmation_or_invoice: ("order_updates", "order updates are disabled."),
    ActionType.add_note: ("order_updates", "order updates are disabled."),
    ActionType.add_tag: ("order_updates", "order updates are disabled."),
    ActionType.add_internal_note_or_tag: ("order_updates", "order updates are disabled."),
    ActionType.cancel_order: ("cancel_orders", "cancellations are disabled."),
    ActionType.refund_order: ("automatic_refunds", "automatic refunds are disabled."),
}


@dataclass(frozen=True)
class PolicyDecision:
    """Result of a policy check. ``reason`` is set only when not allowed."""

    allowed: bool
    reason: str | None = None


def check_policy(action_type: ActionType | str, policy: AutomationPolicy) -> PolicyDecision:
    """Decide whether an action may run without approval.

    Args:
        action_type: Action type tag (unknown tags are always allowed).
        policy: Merchant automation toggles.

    Returns:
        PolicyDecision(allowed=True) or PolicyDecision(allowed=False, reason=...).
    """
    try:
        key = ActionType(action_type)
    except ValueError:
        return PolicyDecision(allowed=True)

    gate = POLICY_TABLE.get(key)
    if gate is None:
        return PolicyDecision(allowed=True)

    flag, reason = gate
    if getattr(policy, flag):
        return PolicyDecision(allowed=True)
    return PolicyDecision(allowed=False, reason=reason)


def load_automation_policy(
    db: Session,
    user_id: str,
    override: dict[str, Any] | AutomationPolicy | None = None,
    defaults: AutomationPolicy | None = None,
) -> AutomationPolicy:
    """Load the merchant's automation toggles, fresh for each batch.

    An explicit override (e.g. carried in the batch request) wins over the
    stored settings. A missing settings row yields the defaults.

    Args:
        db: Database session.
        user_id: Merchant user id.
        override: Optional explicit policy.
        defaults: Policy for merchants without stored settings.

    Returns:
        AutomationPolicy.
    """
    if isinstance(override, AutomationPolicy):
        return override
    if isinstance(override, dict):
        return AutomationPolicy.model_validate(override)

    row = db.query(AutomationSettings).filter(AutomationSettings.user_id == user_id).first()
    if row is None:
        logger.debug("No automation settings for user=%s, using defaults", user_id)
        return defaults or AutomationPolicy()
    return AutomationPolicy.model_validate(row)
