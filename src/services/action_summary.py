"""Human-readable change summaries for ledger records.

One function serves both the pending-approval and the applied path, so a
reviewer sees the same sentence whichever way an action is resolved.
"""

from typing import Any

from src.db.models import ActionType
from src.models.actions import (
    ActionPayload,
    CancelOrderPayload,
    FulfillmentHoldPayload,
    InternalNoteOrTagPayload,
    RefundOrderPayload,
    ShippingAddressPayload,
    ShippingMethodPayload,
    TagPayload,
)
from src.services.action_normalizer import as_number, as_string


def _address_summary(address: dict[str, Any]) -> str:
    parts = [
        as_string(address.get("address1")),
        as_string(address.get("address2")),
        as_string(address.get("zip") or address.get("postal_code")),
        as_string(address.get("city")),
        as_string(address.get("country")),
    ]
    parts = [part for part in parts if part]
    # At most four parts; the country is dropped first
    if len(parts) > 4:
        parts.pop()
    if not parts:
        return "Updated shipping address."
    name = as_string(address.get("name"))
    prefix = f"{name}, " if name else ""
    return f"Updated shipping address to {prefix}{', '.join(parts)}."


def _tag_summary(tag: str | None) -> str:
    tag = as_string(tag)
    return f'Added tag "{tag}".' if tag else "Added tag."


def summarize_action(action_type: ActionType | str, payload: ActionPayload | None) -> str:
    """Build the detail sentence for an action.

    Args:
        action_type: Action type tag.
        payload: Canonical payload (may be None for unknown types).

    Returns:
        Summary sentence, e.g. 'Refunded 49.50.' or 'Added tag "vip".'.
    """
    try:
        kind = ActionType(action_type)
    except ValueError:
        return f"Pending approval for {str(action_type).replace('_', ' ')}."

    if kind == ActionType.update_shipping_address and isinstance(payload, ShippingAddressPayload):
        return _address_summary(payload.shipping_address)
    if kind == ActionType.cancel_order:
        reason = as_string(payload.reason) if isinstance(payload, CancelOrderPayload) else ""
        return f"Cancelled order (reason: {reason})." if reason else "Cancelled order."
    if kind == ActionType.refund_order:
        amount = as_number(payload.amount) if isinstance(payload, RefundOrderPayload) else None
        return f"Refunded {amount:.2f}." if amount else "Refunded order."
    if kind == ActionType.change_shipping_method:
        title = payload.title if isinstance(payload, ShippingMethodPayload) else ""
        return f'Changed shipping method to "{title}".' if title else "Changed shipping method."
    if kind == ActionType.hold_or_release_fulfillment:
        if isinstance(payload, FulfillmentHoldPayload) and payload.mode == "release":
            return "Released fulfillment hold."
        return "Placed fulfillment on hold."
    if kind == ActionType.edit_line_items:
        return "Edited order line items."
    if kind == ActionType.update_customer_contact:
        return "Updated customer contact information."
    if kind == ActionType.resend_confirmation_or_invoice:
        return "Resent order confirmation/invoice."
    if kind == ActionType.add_tag:
        return _tag_summary(payload.tag if isinstance(payload, TagPayload) else None)
    if kind == ActionType.add_internal_note_or_tag:
        if isinstance(payload, InternalNoteOrTagPayload) and payload.tag:
            return _tag_summary(payload.tag)
        return "Updated order note."
    if kind == ActionType.add_note:
        return "Updated order note."
    return "Updated shipping address."
