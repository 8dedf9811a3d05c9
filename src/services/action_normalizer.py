"""Normalize proposed actions into canonical per-type payloads.

Proposals arrive from LLM output or stored legacy records with loosely
typed payloads (camelCase or snake_case keys, numbers as strings, flat
line-item shorthand). Everything downstream of this module works with the
canonical payload models in src.models.actions and never sees the raw map.

Free-text recovery (address sentences, keyword inference) lives in
src.services.proposal_text and is never applied here.
"""

import logging
import math
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.db.models import ActionType
from src.errors import InvalidPayloadError, UnsupportedActionError
from src.models.actions import (
    ActionPayload,
    CancelOrderPayload,
    CustomerContactPayload,
    FulfillmentHoldPayload,
    InternalNoteOrTagPayload,
    InvoicePayload,
    LineItemEditPayload,
    LineItemOperation,
    NotePayload,
    ProposedAction,
    RefundOrderPayload,
    ShippingAddressPayload,
    ShippingMethodPayload,
    TagPayload,
)

logger = logging.getLogger(__name__)


# Coercion helpers


def as_number(value: Any) -> float | None:
    """Coerce to a finite number.

    Numbers pass through, numeric strings are parsed, everything else
    (including booleans, NaN and infinities) returns None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def as_string(value: Any) -> str:
    """Trim strings; collapse non-strings to the empty string."""
    return value.strip() if isinstance(value, str) else ""


def to_gid(resource_type: str, value: Any) -> str:
    """Build a Shopify global id from a bare numeric id.

    Already-qualified ``gid://`` strings pass through unchanged. Zero or
    non-numeric input yields the empty string.

    Args:
        resource_type: GID type tag, e.g. "Order", "LineItem", "ProductVariant".
        value: Bare id (int or numeric string) or a GID.

    Returns:
        ``gid://shopify/<Type>/<n>`` or "".
    """
    if isinstance(value, str) and value.startswith("gid://"):
        return value
    numeric = as_number(value)
    if not numeric:
        return ""
    return f"gid://shopify/{resource_type}/{math.trunc(numeric)}"


def _first(payload: dict[str, Any], *keys: str) -> Any:
    """Return the first value among keys that is not None."""
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


# Line item operations


def _parse_structured_operation(item: Any) -> LineItemOperation | None:
    if not isinstance(item, dict):
        return None
    op_type = as_string(item.get("type")).lower()
    if not op_type:
        return None
    quantity = as_number(_first(item, "quantity", "qty"))
    line_item_id = to_gid("LineItem", _first(item, "lineItemId", "line_item_id", "id"))
    variant_id = to_gid("ProductVariant", _first(item, "variantId", "variant_id"))

    if op_type in ("set_quantity", "remove_line_item"):
        if not line_item_id:
            return None
        if op_type == "remove_line_item":
            target = 0
        else:
            target = max(0, math.trunc(quantity or 0))
        return LineItemOperation(type=op_type, line_item_id=line_item_id, quantity=target)

    if op_type == "add_variant":
        if not variant_id:
            return None
        target = max(1, math.trunc(quantity if quantity is not None else 1))
        return LineItemOperation(type=op_type, variant_id=variant_id, quantity=target)

    return None


def parse_line_item_operations(payload: dict[str, Any]) -> list[LineItemOperation]:
    """Expand an edit_line_items payload into an ordered operation list.

    A structured ``operations`` array wins. Invalid entries in it are
    dropped. With no usable structured entry, a single operation is
    inferred from the flat legacy shape: a variant id means add_variant,
    a line item id with mode "remove" means remove_line_item, and a line
    item id otherwise means set_quantity.

    Args:
        payload: Raw action payload.

    Returns:
        Non-empty list of operations.

    Raises:
        InvalidPayloadError: If neither shape yields an operation.
    """
    raw_operations = payload.get("operations")
    if isinstance(raw_operations, list):
        operations = [
            op for op in (_parse_structured_operation(item) for item in raw_operations) if op
        ]
        if operations:
            return operations

    line_item_id = to_gid("LineItem", _first(payload, "lineItemId", "line_item_id", "id"))
    variant_id = to_gid("ProductVariant", _first(payload, "variantId", "variant_id"))
    legacy_quantity = max(0, math.trunc(as_number(_first(payload, "quantity", "qty")) or 0))
    mode = as_string(_first(payload, "mode", "operation")).lower()

    if variant_id:
        return [
            LineItemOperation(
                type="add_variant",
                variant_id=variant_id,
                quantity=max(1, legacy_quantity or 1),
            )
        ]
    if line_item_id and mode == "remove":
        return [LineItemOperation(type="remove_line_item", line_item_id=line_item_id, quantity=0)]
    if line_item_id:
        return [
            LineItemOperation(type="set_quantity", line_item_id=line_item_id, quantity=legacy_quantity)
        ]

    raise InvalidPayloadError(
        "Line item edits require payload.operations with "
        "set_quantity/remove_line_item/add_variant."
    )


# Per-type normalizers


def _normalize_shipping_address(payload: dict[str, Any]) -> ShippingAddressPayload:
    address = _first(payload, "shipping_address", "shippingAddress")
    if not isinstance(address, dict) or not address:
        raise InvalidPayloadError("shipping_address must be provided.")
    return ShippingAddressPayload(shipping_address=dict(address))


def _normalize_cancel(payload: dict[str, Any]) -> CancelOrderPayload:
    return CancelOrderPayload(
        reason=payload.get("reason"),
        email=payload.get("email"),
        refund=payload.get("refund"),
        restock=payload.get("restock"),
    )


def _normalize_refund(payload: dict[str, Any]) -> RefundOrderPayload:
    amount = as_number(payload.get("amount"))
    return RefundOrderPayload(
        amount=amount if amount else None,
        currency=as_string(payload.get("currency") or payload.get("currency_code")) or None,
        reason=as_string(payload.get("reason")) or None,
        note=as_string(payload.get("note")) or None,
    )


def _normalize_shipping_method(payload: dict[str, Any]) -> ShippingMethodPayload:
    title = as_string(_first(payload, "title", "shipping_title"))
    price_value = payload.get("price")
    if isinstance(price_value, bool):
        price = ""
    elif isinstance(price_value, (int, float)):
        price = str(price_value)
    else:
        price = as_string(price_value)
    if not title or not price:
        raise InvalidPayloadError("Shipping method change requires title and price.")
    return ShippingMethodPayload(
        title=title,
        price=price,
        code=as_string(_first(payload, "code", "shipping_code")) or None,
        source=as_string(payload.get("source")) or "manual",
    )


def _normalize_hold(payload: dict[str, Any]) -> FulfillmentHoldPayload:
    mode = as_string(_first(payload, "mode", "operation")).lower()
    fulfillment_order_id = as_number(
        _first(payload, "fulfillment_order_id", "fulfillmentOrderId")
    )
    return FulfillmentHoldPayload(
        mode="release" if mode == "release" else "hold",
        fulfillment_order_id=math.trunc(fulfillment_order_id) if fulfillment_order_id else None,
        reason=as_string(payload.get("reason")) or None,
        reason_notes=as_string(_first(payload, "reason_notes", "note")) or None,
    )


def _normalize_line_items(payload: dict[str, Any]) -> LineItemEditPayload:
    staff_note = as_string(
        _first(payload, "staff_note", "edit_summary", "summary", "requested_changes")
    )
    return LineItemEditPayload(
        operations=parse_line_item_operations(payload),
        staff_note=staff_note or None,
    )


def _normalize_contact(payload: dict[str, Any]) -> CustomerContactPayload:
    email = as_string(payload.get("email"))
    phone = as_string(payload.get("phone"))
    if not email and not phone:
        raise InvalidPayloadError("email or phone must be provided.")
    return CustomerContactPayload(email=email or None, phone=phone or None)


def _normalize_note(payload: dict[str, Any]) -> NotePayload:
    note = payload.get("note")
    return NotePayload(note=note if isinstance(note, str) else "")


def _normalize_tag(payload: dict[str, Any]) -> TagPayload:
    tag = as_string(payload.get("tag"))
    if not tag:
        raise InvalidPayloadError("tag must be provided.")
    return TagPayload(tag=tag)


def _normalize_internal(payload: dict[str, Any]) -> InternalNoteOrTagPayload:
    tag = as_string(payload.get("tag"))
    if tag:
        return InternalNoteOrTagPayload(tag=tag)
    note = payload.get("note")
    return InternalNoteOrTagPayload(note=note if isinstance(note, str) else "")


def _normalize_invoice(payload: dict[str, Any]) -> InvoicePayload:
    return InvoicePayload(
        to=as_string(_first(payload, "to", "to_email", "email")) or None,
        custom_message=as_string(_first(payload, "custom_message", "message")) or None,
    )


_NORMALIZERS: dict[ActionType, Callable[[dict[str, Any]], ActionPayload]] = {
    ActionType.update_shipping_address: _normalize_shipping_address,
    ActionType.cancel_order: _normalize_cancel,
    ActionType.refund_order: _normalize_refund,
    ActionType.change_shipping_method: _normalize_shipping_method,
    ActionType.hold_or_release_fulfillment: _normalize_hold,
    ActionType.edit_line_items: _normalize_line_items,
    ActionType.update_customer_contact: _normalize_contact,
    ActionType.add_note: _normalize_note,
    ActionType.add_tag: _normalize_tag,
    ActionType.add_internal_note_or_tag: _normalize_internal,
    ActionType.resend_confirmation_or_invoice: _normalize_invoice,
}


def parse_action_type(raw_type: Any) -> ActionType:
    """Map a raw type tag to ActionType.

    Raises:
        UnsupportedActionError: If the tag is not a supported action type.
    """
    tag = as_string(raw_type).lower()
    try:
        return ActionType(tag)
    except ValueError:
        raise UnsupportedActionError(tag or str(raw_type)) from None


def normalize_payload(action_type: ActionType, payload: dict[str, Any] | None) -> ActionPayload:
    """Build the canonical payload for one action type.

    Args:
        action_type: Parsed action type.
        payload: Raw payload map (None treated as empty).

    Returns:
        Canonical payload model for the type.

    Raises:
        InvalidPayloadError: If required fields are missing or malformed.
    """
    raw = payload if isinstance(payload, dict) else {}
    try:
        return _NORMALIZERS[action_type](raw)
    except PydanticValidationError as e:
        raise InvalidPayloadError(f"Invalid {action_type.value} payload: {e}") from e


def normalize_action(raw: dict[str, Any]) -> ProposedAction:
    """Normalize a raw proposed action ``{type, orderId, payload}``.

    Raises:
        UnsupportedActionError: Unknown type.
        InvalidPayloadError: Payload fails normalization.
    """
    action_type = parse_action_type(raw.get("type"))
    order_ref = _first(raw, "orderId", "order_id", "orderRef")
    return ProposedAction(
        type=action_type,
        order_ref=order_ref,
        payload=normalize_payload(action_type, raw.get("payload")),
    )
