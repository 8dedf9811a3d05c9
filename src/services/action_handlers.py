"""Action handler registry: one Shopify call sequence per action type.

Handlers share the signature ``handler(client, order_id, payload)`` and
receive the canonical payload produced by the normalizer. The registry
makes the dispatch table independently testable from the policy table.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from src.clients.shopify import ShopifyAdminClient
from src.db.models import ActionType
from src.errors import (
    FulfillmentOrderNotFoundError,
    InvalidPayloadError,
    MutationFailedError,
    UnsupportedActionError,
)
from src.models.actions import (
    ActionPayload,
    CancelOrderPayload,
    CustomerContactPayload,
    FulfillmentHoldPayload,
    InternalNoteOrTagPayload,
    InvoicePayload,
    LineItemEditPayload,
    NotePayload,
    RefundOrderPayload,
    ShippingAddressPayload,
    ShippingMethodPayload,
    TagPayload,
)
from src.services.action_normalizer import as_number, to_gid
from src.utils.redaction import redact_for_logging

logger = logging.getLogger(__name__)

Handler = Callable[[ShopifyAdminClient, str, Any], Awaitable[Any]]

_HANDLERS: dict[ActionType, Handler] = {}


def register(action_type: ActionType) -> Callable[[Handler], Handler]:
    """Register a handler for an action type."""

    def decorator(func: Handler) -> Handler:
        _HANDLERS[action_type] = func
        return func

    return decorator


def get_handler(action_type: ActionType | str) -> Handler:
    """Look up the handler for an action type.

    Raises:
        UnsupportedActionError: No handler registered.
    """
    try:
        return _HANDLERS[ActionType(action_type)]
    except (ValueError, KeyError):
        raise UnsupportedActionError(str(action_type)) from None


def registered_action_types() -> list[ActionType]:
    return list(_HANDLERS)


async def dispatch(
    client: ShopifyAdminClient, action_type: ActionType, order_id: str, payload: ActionPayload
) -> Any:
    """Execute one normalized action against the shop."""
    handler = get_handler(action_type)
    logger.info(
        "Executing %s on order %s (shop=%s)", action_type.value, order_id, client.shop_domain
    )
    logger.debug("Payload for %s: %s", action_type.value, redact_for_logging(payload.to_payload()))
    return await handler(client, order_id, payload)


def _order_id_int(order_id: str) -> int:
    return int(order_id)


# REST handlers


@register(ActionType.update_shipping_address)
async def update_shipping_address(
    client: ShopifyAdminClient, order_id: str, payload: ShippingAddressPayload
) -> Any:
    if not payload.shipping_address:
        raise InvalidPayloadError("shipping_address must be provided.")
    return await client.request(
        "PUT",
        f"orders/{order_id}.json",
        body={
            "order": {
                "id": _order_id_int(order_id),
                "shipping_address": payload.shipping_address,
            }
        },
    )


@register(ActionType.cancel_order)
async def cancel_order(
    client: ShopifyAdminClient, order_id: str, payload: CancelOrderPayload
) -> Any:
    body = payload.to_payload()
    return await client.request(
        "POST", f"orders/{order_id}/cancel.json", body=body or None
    )


@register(ActionType.refund_order)
async def refund_order(
    client: ShopifyAdminClient, order_id: str, payload: RefundOrderPayload
) -> Any:
    refund: dict[str, Any] = {"notify": True}
    if payload.note:
        refund["note"] = payload.note
    if payload.reason:
        refund["reason"] = payload.reason
    amount = as_number(payload.amount)
    if amount:
        transaction: dict[str, Any] = {"kind": "refund", "amount": f"{amount:.2f}"}
        if payload.currency:
            transaction["currency"] = payload.currency
        refund["transactions"] = [transaction]
    return await client.request(
        "POST", f"orders/{order_id}/refunds.json", body={"refund": refund}
    )


@register(ActionType.change_shipping_method)
async def change_shipping_method(
    client: ShopifyAdminClient, order_id: str, payload: ShippingMethodPayload
) -> Any:
    shipping_line: dict[str, Any] = {"title": payload.title, "price": payload.price}
    if payload.code:
        shipping_line["code"] = payload.code
    if payload.source:
        shipping_line["source"] = payload.source
    return await client.request(
        "PUT",
        f"orders/{order_id}.json",
        body={"order": {"id": _order_id_int(order_id), "shipping_lines": [shipping_line]}},
    )


@register(ActionType.hold_or_release_fulfillment)
async def hold_or_release_fulfillment(
    client: ShopifyAdminClient, order_id: str, payload: FulfillmentHoldPayload
) -> Any:
    fulfillment_order_id = payload.fulfillment_order_id
    if not fulfillment_order_id:
        fulfillment_orders = await client.get_fulfillment_orders(order_id)
        first_id = as_number(fulfillment_orders[0].get("id")) if fulfillment_orders else None
        if not first_id:
            raise FulfillmentOrderNotFoundError(order_id)
        fulfillment_order_id = int(first_id)

    if payload.mode == "release":
        return await client.request(
            "POST", f"fulfillment_orders/{fulfillment_order_id}/release_hold.json"
        )

    hold: dict[str, Any] = {}
    if payload.reason:
        hold["reason"] = payload.reason
    if payload.reason_notes:
        hold["reason_notes"] = payload.reason_notes
    return await client.request(
        "POST",
        f"fulfillment_orders/{fulfillment_order_id}/hold.json",
        body={"fulfillment_hold": hold} if hold else None,
    )


@register(ActionType.update_customer_contact)
async def update_customer_contact(
    client: ShopifyAdminClient, order_id: str, payload: CustomerContactPayload
) -> Any:
    if not payload.email and not payload.phone:
        raise InvalidPayloadError("email or phone must be provided.")
    order: dict[str, Any] = {"id": _order_id_int(order_id)}
    if payload.email:
        order["email"] = payload.email
    if payload.phone:
        order["phone"] = payload.phone
    return await client.request("PUT", f"orders/{order_id}.json", body={"order": order})


@register(ActionType.add_note)
async def add_note(client: ShopifyAdminClient, order_id: str, payload: NotePayload) -> Any:
    return await client.request(
        "PUT",
        f"orders/{order_id}.json",
        body={"order": {"id": _order_id_int(order_id), "note": payload.note}},
    )


@register(ActionType.add_tag)
async def add_tag(client: ShopifyAdminClient, order_id: str, payload: TagPayload) -> Any:
    tag = payload.tag.strip()
    if not tag:
        raise InvalidPayloadError("tag must be provided.")

    # Read the tag list fresh on every call; an earlier action in the same
    # batch may have changed it.
    current = await client.get_order(order_id)
    existing = [item.strip() for item in str(current.get("tags") or "").split(",") if item.strip()]
    if tag not in existing:
        existing.append(tag)

    return await client.request(
        "PUT",
        f"orders/{order_id}.json",
        body={"order": {"id": _order_id_int(order_id), "tags": ", ".join(existing)}},
    )


@register(ActionType.add_internal_note_or_tag)
async def add_internal_note_or_tag(
    client: ShopifyAdminClient, order_id: str, payload: InternalNoteOrTagPayload
) -> Any:
    if payload.tag:
        return await add_tag(client, order_id, TagPayload(tag=payload.tag))
    return await add_note(client, order_id, NotePayload(note=payload.note or ""))


@register(ActionType.resend_confirmation_or_invoice)
async def resend_confirmation_or_invoice(
    client: ShopifyAdminClient, order_id: str, payload: InvoicePayload
) -> Any:
    invoice: dict[str, Any] = {}
    if payload.to:
        invoice["to"] = payload.to
    if payload.custom_message:
        invoice["custom_message"] = payload.custom_message
    return await client.request(
        "POST", f"orders/{order_id}/send_invoice.json", body={"invoice": invoice}
    )


# GraphQL order edit

ORDER_EDIT_BEGIN = """
mutation OrderEditBegin($id: ID!) {
  orderEditBegin(id: $id) {
    calculatedOrder { id }
    userErrors { message }
  }
}
"""

ORDER_EDIT_ADD_VARIANT = """
mutation AddVariant($id: ID!, $variantId: ID!, $quantity: Int!) {
  orderEditAddVariant(id: $id, variantId: $variantId, quantity: $quantity) {
    userErrors { message }
  }
}
"""

ORDER_EDIT_SET_QUANTITY = """
mutation SetQuantity($id: ID!, $lineItemId: ID!, $quantity: Int!) {
  orderEditSetQuantity(id: $id, lineItemId: $lineItemId, quantity: $quantity) {
    userErrors { message }
  }
}
"""

ORDER_EDIT_COMMIT = """
mutation CommitEdit($id: ID!, $notifyCustomer: Boolean, $staffNote: String) {
  orderEditCommit(id: $id, notifyCustomer: $notifyCustomer, staffNote: $staffNote) {
    order { id }
    userErrors { message }
  }
}
"""


def _raise_user_errors(
    data: dict[str, Any],
    key: str,
    fallback: str,
    calculated_order_id: str | None = None,
) -> dict[str, Any]:
    """Return the mutation scope, raising MutationFailedError on user errors."""
    scope = data.get(key) if isinstance(data, dict) else None
    scope = scope if isinstance(scope, dict) else {}
    user_errors = scope.get("userErrors")
    if isinstance(user_errors, list) and user_errors:
        message = "; ".join(
            m for m in ((e or {}).get("message") for e in user_errors) if m
        ) or fallback
        raise MutationFailedError(message, calculated_order_id=calculated_order_id)
    return scope


@register(ActionType.edit_line_items)
async def edit_line_items(
    client: ShopifyAdminClient, order_id: str, payload: LineItemEditPayload
) -> Any:
    """Run the begin -> mutate each operation -> commit order-edit sequence.

    Operations run in list order. The first failing step aborts the rest
    and nothing is committed. An opened edit session is not discarded on
    failure; its id is logged and attached to the raised error so an
    operator can discard it in the Shopify admin.
    """
    if not payload.operations:
        raise InvalidPayloadError(
            "Line item edits require payload.operations with "
            "set_quantity/remove_line_item/add_variant."
        )
    order_gid = to_gid("Order", order_id)
    if not order_gid:
        raise InvalidPayloadError(f"Could not build order GID from '{order_id}'.")

    begin = _raise_user_errors(
        await client.graphql(ORDER_EDIT_BEGIN, {"id": order_gid}),
        "orderEditBegin",
        "Could not begin order edit.",
    )
    calculated_order_id = (begin.get("calculatedOrder") or {}).get("id")
    if not calculated_order_id:
        raise MutationFailedError("orderEditBegin returned no calculated order id.")

    try:
        for operation in payload.operations:
            if operation.type == "add_variant":
                data = await client.graphql(
                    ORDER_EDIT_ADD_VARIANT,
                    {
                        "id": calculated_order_id,
                        "variantId": operation.variant_id,
                        "quantity": operation.quantity,
                    },
                )
                _raise_user_errors(
                    data, "orderEditAddVariant", "Could not add variant.", calculated_order_id
                )
                continue

            data = await client.graphql(
                ORDER_EDIT_SET_QUANTITY,
                {
                    "id": calculated_order_id,
                    "lineItemId": operation.line_item_id,
                    "quantity": operation.quantity,
                },
            )
            _raise_user_errors(
                data,
                "orderEditSetQuantity",
                "Could not update line item quantity.",
                calculated_order_id,
            )

        variables: dict[str, Any] = {"id": calculated_order_id, "notifyCustomer": False}
        if payload.staff_note:
            variables["staffNote"] = payload.staff_note
        commit = _raise_user_errors(
            await client.graphql(ORDER_EDIT_COMMIT, variables),
            "orderEditCommit",
            "Could not commit order edit.",
            calculated_order_id,
        )
        if not (commit.get("order") or {}).get("id"):
            raise MutationFailedError(
                "Order edit commit did not return an order.",
                calculated_order_id=calculated_order_id,
            )
    except Exception:
        logger.error(
            "Order edit for order %s failed with open calculated order %s; "
            "discard it manually in the Shopify admin",
            order_id,
            calculated_order_id,
        )
        raise
    return commit
