"""Action models for proposed order mutations.

These Pydantic models define the canonical, per-type payloads that the
normalizer produces and the handlers consume, plus the proposed action,
automation policy and execution result shapes that flow through a batch.
"""

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from src.db.models import ActionType


class CanonicalPayload(BaseModel):
    """Base for per-type canonical payloads.

    Canonical payloads are what the ledger persists and what the action
    key is derived from, so ``to_payload`` must be stable for equal input.
    """

    model_config = ConfigDict(frozen=True)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the persisted dict shape, omitting unset fields."""
        return self.model_dump(exclude_none=True, by_alias=True)


class ShippingAddressPayload(CanonicalPayload):
    """Replacement shipping address for an order."""

    shipping_address: dict[str, Any] = Field(
        ...,
        description="Shopify address object (name, address1, address2, zip, city, country...)",
    )


class CancelOrderPayload(CanonicalPayload):
    """Optional cancel parameters, forwarded only when present."""

    reason: Optional[Any] = None
    email: Optional[Any] = None
    refund: Optional[Any] = None
    restock: Optional[Any] = None


class RefundOrderPayload(CanonicalPayload):
    """Refund parameters. A missing amount refunds without transactions."""

    amount: Optional[float] = None
    currency: Optional[str] = None
    reason: Optional[str] = None
    note: Optional[str] = None


class ShippingMethodPayload(CanonicalPayload):
    """Replacement shipping line. Title and price are required."""

    title: str = Field(..., min_length=1)
    price: str = Field(..., min_length=1)
    code: Optional[str] = None
    source: str = "manual"


class FulfillmentHoldPayload(CanonicalPayload):
    """Hold or release the order's fulfillment."""

    mode: Literal["hold", "release"] = "hold"
    fulfillment_order_id: Optional[int] = None
    reason: Optional[str] = None
    reason_notes: Optional[str] = None


class LineItemOperation(BaseModel):
    """One step of an order edit.

    Attributes:
        type: set_quantity, remove_line_item or add_variant
        line_item_id: LineItem GID for set_quantity/remove_line_item
        variant_id: ProductVariant GID for add_variant
        quantity: Target quantity (0 for removal, at least 1 for addition)
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["set_quantity", "remove_line_item", "add_variant"]
    line_item_id: Optional[str] = Field(default=None, alias="lineItemId")
    variant_id: Optional[str] = Field(default=None, alias="variantId")
    quantity: int = Field(..., ge=0)


class LineItemEditPayload(CanonicalPayload):
    """Ordered list of edit operations executed in one order-edit session."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    operations: list[LineItemOperation] = Field(..., min_length=1)
    staff_note: Optional[str] = None


class CustomerContactPayload(CanonicalPayload):
    """New customer contact details. At least one field is set."""

    email: Optional[str] = None
    phone: Optional[str] = None


class NotePayload(CanonicalPayload):
    """Order note replacement. An empty note clears it."""

    note: str = ""


class TagPayload(CanonicalPayload):
    """Tag to append to the order's tag list."""

    tag: str = Field(..., min_length=1)


class InternalNoteOrTagPayload(CanonicalPayload):
    """Tag when present, otherwise a note."""

    tag: Optional[str] = None
    note: Optional[str] = None


class InvoicePayload(CanonicalPayload):
    """Invoice resend options."""

    to: Optional[str] = None
    custom_message: Optional[str] = None


ActionPayload = Union[
    ShippingAddressPayload,
    CancelOrderPayload,
    RefundOrderPayload,
    ShippingMethodPayload,
    FulfillmentHoldPayload,
    LineItemEditPayload,
    CustomerContactPayload,
    NotePayload,
    TagPayload,
    InternalNoteOrTagPayload,
    InvoicePayload,
]


class ProposedAction(BaseModel):
    """An intended mutation after normalization.

    Attributes:
        type: Action type tag
        order_ref: Loose order identifier as proposed (id, number or name)
        payload: Canonical payload for the type
    """

    model_config = ConfigDict(frozen=True)

    type: ActionType
    order_ref: Optional[Any] = None
    payload: ActionPayload


class AutomationPolicy(BaseModel):
    """Per-merchant automation toggles.

    historic_inbox_access only affects drafting and is carried for
    completeness.
    """

    model_config = ConfigDict(from_attributes=True)

    order_updates: bool = True
    cancel_orders: bool = True
    automatic_refunds: bool = False
    historic_inbox_access: bool = False


class ExecutionResult(BaseModel):
    """Outcome of one proposed action in a batch."""

    type: str
    ok: bool
    status: Literal["success", "pending_approval", "error"]
    order_id: Optional[str] = None
    detail: Optional[str] = None
    error: Optional[str] = None
    action_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase wire names, omitting empty fields."""
        data: dict[str, Any] = {
            "type": self.type,
            "ok": self.ok,
            "status": self.status,
            "orderId": self.order_id,
        }
        if self.detail is not None:
            data["detail"] = self.detail
        if self.error is not None:
            data["error"] = self.error
        if self.action_id is not None:
            data["actionId"] = self.action_id
        return data
