"""Pydantic models shared across the action pipeline."""

from src.models.actions import (
    ActionPayload,
    AutomationPolicy,
    CancelOrderPayload,
    CanonicalPayload,
    CustomerContactPayload,
    ExecutionResult,
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

__all__ = [
    "ActionPayload",
    "AutomationPolicy",
    "CanonicalPayload",
    "CancelOrderPayload",
    "CustomerContactPayload",
    "ExecutionResult",
    "FulfillmentHoldPayload",
    "InternalNoteOrTagPayload",
    "InvoicePayload",
    "LineItemEditPayload",
    "LineItemOperation",
    "NotePayload",
    "ProposedAction",
    "RefundOrderPayload",
    "ShippingAddressPayload",
    "ShippingMethodPayload",
    "TagPayload",
]
