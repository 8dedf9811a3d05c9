"""SQLAlchemy ORM models for the automation state database.

This module defines the merchant connection, automation settings, mail
thread, action ledger and agent log tables used by the action dispatch
pipeline. Uses SQLAlchemy 2.0 style with Mapped and mapped_column.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
)


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


# Enums matching the database schema constraints


class ActionType(str, Enum):
    """Supported commerce mutation kinds."""

    update_shipping_address = "update_shipping_address"
    cancel_order = "cancel_order"
    refund_order = "refund_order"
    change_shipping_method = "change_shipping_method"
    hold_or_release_fulfillment = "hold_or_release_fulfillment"
    edit_line_items = "edit_line_items"
    update_customer_contact = "update_customer_contact"
    add_note = "add_note"
    add_tag = "add_tag"
    add_internal_note_or_tag = "add_internal_note_or_tag"
    resend_confirmation_or_invoice = "resend_confirmation_or_invoice"


class ActionStatus(str, Enum):
    """Status values for ledger action records.

    Lifecycle: pending -> applied/declined/failed
               failed -> pending (re-proposed while still gated)
               failed -> applied (re-submitted and executed)
    """

    pending = "pending"
    applied = "applied"
    declined = "declined"
    failed = "failed"


class ActionSource(str, Enum):
    """Which path last resolved an action record."""

    automation = "automation"
    manual_approval = "manual_approval"


class LogStatus(str, Enum):
    """Severity values for agent log entries."""

    success = "success"
    error = "error"
    info = "info"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ShopConnection(Base):
    """An installed commerce platform connection for a merchant.

    Access tokens are stored encrypted (see credential_encryption). A row
    with uninstalled_at set is kept for history and never resolved.
    """

    __tablename__ = "shops"
    __table_args__ = (
        Index("idx_shops_owner", "owner_user_id"),
        Index("idx_shops_workspace", "workspace_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    owner_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    workspace_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    platform: Mapped[str] = mapped_column(String(20), nullable=False, default="shopify")
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    access_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(String(50), nullable=False, default=utc_now_iso)
    uninstalled_at: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<ShopConnection(id={self.id!r}, shop_domain={self.shop_domain!r})>"


class AutomationSettings(Base):
    """Per-merchant automation toggles.

    Mutated only through merchant-facing settings. Missing rows fall back
    to the defaults in the policy gate.
    """

    __tablename__ = "agent_automation"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_updates: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    cancel_orders: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    automatic_refunds: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    historic_inbox_access: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    created_at: Mapped[str] = mapped_column(String(50), nullable=False, default=utc_now_iso)
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    def __repr__(self) -> str:
        return f"<AutomationSettings(user_id={self.user_id!r})>"


class MailThread(Base):
    """A support mail thread owned by a user."""

    __tablename__ = "mail_threads"
    __table_args__ = (Index("idx_mail_threads_user", "user_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider_thread_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    snippet: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(String(50), nullable=False, default=utc_now_iso)

    def __repr__(self) -> str:
        return f"<MailThread(id={self.id!r}, user_id={self.user_id!r})>"


class ThreadAction(Base):
    """Ledger row tracking one proposed action through its lifecycle.

    Keyed by (user_id, thread_id, action_key). The same row is updated in
    place on decision or execution, never duplicated.
    """

    __tablename__ = "thread_actions"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "thread_id",
            "action_key",
            name="uq_thread_actions_user_thread_key",
        ),
        Index("idx_thread_actions_thread_status", "thread_id", "status"),
        Index("idx_thread_actions_updated", "updated_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    thread_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    action_key: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ActionStatus.pending.value
    )
    detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Canonical payload as JSON text
    payload: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    order_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    source: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ActionSource.automation.value
    )
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[str] = mapped_column(String(50), nullable=False, default=utc_now_iso)
    decided_at: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    applied_at: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    declined_at: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    def __repr__(self) -> str:
        return (
            f"<ThreadAction(id={self.id!r}, action_type={self.action_type!r}, "
            f"status={self.status!r})>"
        )


class AgentLog(Base):
    """Audit trail entry for agent activity on a thread.

    Also stores the free-text proposals that the decision callback can
    replay via proposalLogId.
    """

    __tablename__ = "agent_logs"
    __table_args__ = (
        Index("idx_agent_logs_thread", "thread_id"),
        Index("idx_agent_logs_step", "step_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    thread_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    draft_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    step_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # JSON text or plain text
    step_detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LogStatus.info.value
    )
    created_at: Mapped[str] = mapped_column(String(50), nullable=False, default=utc_now_iso)

    def __repr__(self) -> str:
        return f"<AgentLog(id={self.id!r}, step_name={self.step_name!r})>"
