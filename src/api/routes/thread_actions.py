"""FastAPI routes for thread action execution and review.

Provides endpoints to execute a batch of proposed actions, accept or
decline a pending action, and list a thread's ledger records.
"""

import httpx
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from src.api.middleware.auth import get_current_user_id
from src.api.schemas import (
    DecisionRequestBody,
    ExecuteActionsRequest,
    ExecuteActionsResponse,
    ThreadActionListResponse,
)
from src.cli.config import SonaConfig, get_config
from src.db.connection import get_db
from src.models.actions import AutomationPolicy
from src.services import ActionLedgerService
from src.services.automation_executor import ExecutionContext, execute_automation_actions
from src.services.decision_service import DecisionRequest, DecisionService

router = APIRouter(prefix="/threads", tags=["thread-actions"])


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Dependency returning the app-wide httpx client."""
    return request.app.state.http_client


def get_settings(request: Request) -> SonaConfig:
    """Dependency returning the loaded configuration."""
    config = getattr(request.app.state, "config", None)
    if config is None:
        config = get_config()
        request.app.state.config = config
    return config


@router.post(
    "/{thread_id}/automation/execute",
    response_model=ExecuteActionsResponse,
    response_model_exclude_none=True,
)
async def execute_actions(
    thread_id: str,
    body: ExecuteActionsRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    http_client: httpx.AsyncClient = Depends(get_http_client),
    settings: SonaConfig = Depends(get_settings),
) -> dict:
    """Execute a batch of proposed actions for a thread.

    Per-action failures are reported in the results, not as HTTP errors.
    """
    ctx = ExecutionContext(
        db=db,
        user_id=user_id,
        http_client=http_client,
        thread_id=thread_id,
        workspace_id=body.workspace_id,
        api_version=body.api_version or settings.shopify.api_version,
        timeout=settings.shopify.request_timeout_seconds,
        default_policy=AutomationPolicy(**settings.automation_defaults.model_dump()),
    )
    policy = body.automation.model_dump() if body.automation else None
    results = await execute_automation_actions(
        ctx, body.actions, policy=policy, order_id_map=body.order_id_map
    )
    return {"results": [result.to_dict() for result in results]}


@router.post("/{thread_id}/order-updates/accept")
async def decide_action(
    thread_id: str,
    body: DecisionRequestBody,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    http_client: httpx.AsyncClient = Depends(get_http_client),
    settings: SonaConfig = Depends(get_settings),
) -> dict:
    """Accept or decline a pending action.

    Errors propagate as domain exceptions and are rendered by the
    application exception handlers.
    """
    service = DecisionService(
        db,
        http_client,
        api_version=settings.shopify.api_version,
        timeout=settings.shopify.request_timeout_seconds,
    )
    return await service.decide(
        user_id,
        thread_id,
        DecisionRequest(
            decision=body.decision,
            action_id=body.action_id,
            proposal_log_id=body.proposal_log_id,
            proposal_text=body.proposal_text,
        ),
    )


@router.get("/{thread_id}/actions", response_model=ThreadActionListResponse)
def list_actions(
    thread_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> dict:
    """List ledger records for a thread, newest first."""
    ledger = ActionLedgerService(db)
    records = ledger.list_for_thread(user_id, thread_id)
    return {"actions": [ledger.to_dict(r) for r in records], "total": len(records)}
