"""Pydantic schemas for API request/response validation.

This module defines the data contracts for the Sona automation REST API:
batch execution, reviewer decisions and ledger listing. Field names on
the wire are camelCase, matching the mail backend that calls this service.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# Execution schemas


class AutomationPolicyInput(BaseModel):
    """Per-request automation policy override."""

    model_config = ConfigDict(extra="ignore")

    order_updates: bool = True
    cancel_orders: bool = True
    automatic_refunds: bool = False
    historic_inbox_access: bool = False


class ExecuteActionsRequest(BaseModel):
    """Request schema for executing a batch of proposed actions.

    Actions are kept as raw maps; malformed entries are skipped or fail
    individually rather than rejecting the whole request.
    """

    model_config = ConfigDict(populate_by_name=True)

    actions: list[Any] = Field(default_factory=list)
    automation: AutomationPolicyInput | None = None
    workspace_id: str | None = Field(None, alias="workspaceId")
    api_version: str | None = Field(None, alias="apiVersion")
    order_id_map: dict[str, Any] | None = Field(None, alias="orderIdMap")


class ExecutionResultResponse(BaseModel):
    """One per-action result."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    ok: bool
    status: str
    order_id: str | None = Field(None, alias="orderId")
    detail: str | None = None
    error: str | None = None
    action_id: str | None = Field(None, alias="actionId")


class ExecuteActionsResponse(BaseModel):
    """Response schema for batch execution."""

    results: list[ExecutionResultResponse]


# Decision schemas


class DecisionRequestBody(BaseModel):
    """Reviewer decision for a pending action."""

    model_config = ConfigDict(populate_by_name=True)

    decision: str = "accepted"
    action_id: str | None = Field(None, alias="actionId")
    proposal_log_id: str | None = Field(None, alias="proposalLogId")
    proposal_text: str | None = Field(None, alias="proposalText")


# Ledger schemas


class ThreadActionResponse(BaseModel):
    """Response schema for a ledger record."""

    id: str
    user_id: str
    thread_id: str
    action_type: str
    action_key: str
    status: str
    detail: str | None
    payload: dict[str, Any]
    order_id: str | None
    order_number: str | None
    source: str | None
    error: str | None
    created_at: str
    decided_at: str | None
    applied_at: str | None
    declined_at: str | None
    updated_at: str


class ThreadActionListResponse(BaseModel):
    """Response schema for a thread's ledger records."""

    actions: list[ThreadActionResponse]
    total: int

