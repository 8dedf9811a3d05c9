"""Approval/audit ledger for proposed thread actions.

Rows in thread_actions are keyed by (user, thread, action_key) and updated
in place as an action moves through pending -> applied/declined/failed.
Concurrent duplicate submissions are absorbed by the unique constraint:
an insert that loses the race re-reads the winning row instead of failing.
"""

import json
import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.db.models import ActionSource, ActionStatus, ThreadAction, utc_now_iso
from src.errors import ConflictError, NotFoundError
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)


class InvalidActionTransition(ConflictError):
    """Raised when a ledger record cannot move to the requested status.

    Attributes:
        current_status: The record's current status.
        attempted_status: The status that was attempted.
    """

    def __init__(self, current_status: ActionStatus, attempted_status: ActionStatus) -> None:
        self.current_status = current_status
        self.attempted_status = attempted_status
        allowed = ", ".join(s.value for s in VALID_TRANSITIONS[current_status]) or "none (terminal)"
        super().__init__(
            f"Cannot move action from '{current_status.value}' to '{attempted_status.value}'. "
            f"Allowed transitions: {allowed}"
        )


# Valid status transitions for ledger records
VALID_TRANSITIONS: dict[ActionStatus, list[ActionStatus]] = {
    ActionStatus.pending: [
        ActionStatus.pending,
        ActionStatus.applied,
        ActionStatus.declined,
        ActionStatus.failed,
    ],
    # Re-submission reuses the record for a fresh attempt
    ActionStatus.failed: [
        ActionStatus.pending,
        ActionStatus.applied,
        ActionStatus.declined,
        ActionStatus.failed,
    ],
    ActionStatus.applied: [],  # terminal
    ActionStatus.declined: [],  # terminal
}


def decode_payload(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


class ActionLedgerService:
    """Service for ledger record lifecycle with transition validation.

    Attributes:
        db: SQLAlchemy session for database operations.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # Queries

    def find_by_key(self, user_id: str, thread_id: str, action_key: str) -> ThreadAction | None:
        return (
            self.db.query(ThreadAction)
            .filter(
                ThreadAction.user_id == user_id,
                ThreadAction.thread_id == thread_id,
                ThreadAction.action_key == action_key,
            )
            .first()
        )

    def get(self, user_id: str, thread_id: str, action_id: str) -> ThreadAction:
        """Get a record by id, scoped to its owner and thread.

        Raises:
            NotFoundError: No such record for this user and thread.
        """
        record = (
            self.db.query(ThreadAction)
            .filter(
                ThreadAction.id == action_id,
                ThreadAction.user_id == user_id,
                ThreadAction.thread_id == thread_id,
            )
            .first()
        )
        if record is None:
            raise NotFoundError("Action", action_id)
        return record

    def latest_pending(self, user_id: str, thread_id: str) -> ThreadAction | None:
        """Most recently updated pending record for a thread.

        With several pending proposals on one thread this picks the newest;
        callers that need a specific one must pass its id.
        """
        return (
            self.db.query(ThreadAction)
            .filter(
                ThreadAction.user_id == user_id,
                ThreadAction.thread_id == thread_id,
                ThreadAction.status == ActionStatus.pending.value,
            )
            .order_by(ThreadAction.updated_at.desc())
            .first()
        )

    def list_for_thread(self, user_id: str, thread_id: str) -> list[ThreadAction]:
        return (
            self.db.query(ThreadAction)
            .filter(ThreadAction.user_id == user_id, ThreadAction.thread_id == thread_id)
            .order_by(ThreadAction.updated_at.desc())
            .all()
        )

    # Writes

    def _transition(self, record: ThreadAction, target: ActionStatus) -> None:
        current = ActionStatus(record.status)
        if target not in VALID_TRANSITIONS[current]:
            raise InvalidActionTransition(current, target)
        record.status = target.value

    def _upsert(
        self,
        user_id: str,
        thread_id: str,
        action_key: str,
        target: ActionStatus,
        fields: dict[str, Any],
    ) -> ThreadAction:
        """Insert or update the row for a key, moving it to ``target``."""
        now = utc_now_iso()
        record = self.find_by_key(user_id, thread_id, action_key)
        if record is None:
            record = ThreadAction(
                user_id=user_id,
                thread_id=thread_id,
                action_key=action_key,
                status=target.value,
                created_at=now,
                updated_at=now,
                **fields,
            )
            self.db.add(record)
            try:
                self.db.commit()
            except IntegrityError:
                # Another request inserted the same key first
                self.db.rollback()
                record = self.find_by_key(user_id, thread_id, action_key)
                if record is None:
                    raise
                logger.info("Ledger insert raced on key for thread %s; updating winner", thread_id)
                return self._apply(record, target, fields, now)
            self.db.refresh(record)
            return record
        return self._apply(record, target, fields, now)

    def _apply(
        self, record: ThreadAction, target: ActionStatus, fields: dict[str, Any], now: str
    ) -> ThreadAction:
        self._transition(record, target)
        for name, value in fields.items():
            setattr(record, name, value)
        record.updated_at = now
        self.db.commit()
        self.db.refresh(record)
        return record

    def record_pending(
        self,
        user_id: str,
        thread_id: str,
        action_type: str,
        action_key: str,
        payload: dict[str, Any],
        detail: str | None,
        order_id: str | None,
        order_number: str | None = None,
    ) -> ThreadAction:
        """Upsert a pending record for an action awaiting approval.

        Re-proposing an identical action returns the existing pending row.
        A failed row is reset to pending. Applied and declined rows are
        terminal and returned unchanged.
        """
        existing = self.find_by_key(user_id, thread_id, action_key)
        if existing is not None and existing.status in (
            ActionStatus.applied.value,
            ActionStatus.declined.value,
        ):
            return existing
        return self._upsert(
            user_id,
            thread_id,
            action_key,
            ActionStatus.pending,
            {
                "action_type": action_type,
                "payload": json.dumps(payload, ensure_ascii=False, sort_keys=True),
                "detail": detail,
                "order_id": order_id,
                "order_number": order_number,
                "error": None,
            },
        )

    def mark_applied(
        self,
        user_id: str,
        thread_id: str,
        action_type: str,
        action_key: str,
        payload: dict[str, Any],
        detail: str | None,
        order_id: str | None,
        order_number: str | None = None,
        source: ActionSource = ActionSource.automation,
    ) -> ThreadAction:
        """Upsert the record as applied with decision/application timestamps."""
        now = utc_now_iso()
        return self._upsert(
            user_id,
            thread_id,
            action_key,
            ActionStatus.applied,
            {
                "action_type": action_type,
                "payload": json.dumps(payload, ensure_ascii=False, sort_keys=True),
                "detail": detail,
                "order_id": order_id,
                "order_number": order_number,
                "source": source.value,
                "decided_at": now,
                "applied_at": now,
                "error": None,
            },
        )

    def mark_failed(
        self,
        user_id: str,
        thread_id: str,
        action_type: str,
        action_key: str,
        payload: dict[str, Any],
        detail: str | None,
        order_id: str | None,
        error: str,
        order_number: str | None = None,
        source: ActionSource = ActionSource.automation,
    ) -> ThreadAction:
        """Upsert the record as failed, keeping the upstream error message."""
        return self._upsert(
            user_id,
            thread_id,
            action_key,
            ActionStatus.failed,
            {
                "action_type": action_type,
                "payload": json.dumps(payload, ensure_ascii=False, sort_keys=True),
                "detail": detail,
                "order_id": order_id,
                "order_number": order_number,
                "source": source.value,
                "decided_at": utc_now_iso(),
                "error": sanitize_error_message(error),
            },
        )

    def mark_declined(self, record: ThreadAction) -> ThreadAction:
        """Decline a record. Declining an already declined record is a no-op.

        Raises:
            InvalidActionTransition: The record was already applied.
        """
        if record.status == ActionStatus.declined.value:
            return record
        now = utc_now_iso()
        return self._apply(
            record,
            ActionStatus.declined,
            {"declined_at": now, "decided_at": now, "error": None},
            now,
        )

    # Serialization

    @staticmethod
    def to_dict(record: ThreadAction) -> dict[str, Any]:
        """Serialize a record into the persisted row shape."""
        return {
            "id": record.id,
            "user_id": record.user_id,
            "thread_id": record.thread_id,
            "action_type": record.action_type,
            "action_key": record.action_key,
            "status": record.status,
            "detail": record.detail,
            "payload": decode_payload(record.payload),
            "order_id": record.order_id,
            "order_number": record.order_number,
            "source": record.source,
            "error": record.error,
            "created_at": record.created_at,
            "decided_at": record.decided_at,
            "applied_at": record.applied_at,
            "declined_at": record.declined_at,
            "updated_at": record.updated_at,
        }
