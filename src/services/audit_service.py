"""Audit logging service for agent actions on mail threads.

Writes agent_logs entries with automatic redaction of sensitive data (PII,
credentials) in structured details. Every executed, gated, declined or
failed action produces one entry for operator visibility.

Usage:
    from src.db.connection import get_db_context
    from src.services.audit_service import AuditService

    with get_db_context() as db:
        audit = AuditService(db)
        audit.log_success(thread_id, "shopify_action_applied", {"action": "add_tag"})
"""

import json
from typing import Any

from sqlalchemy.orm import Session

from src.db.models import AgentLog, LogStatus, utc_now_iso

__all__ = [
    "AuditService",
    "redact_sensitive",
    "LogStatus",
    "REDACT_FIELDS",
    "REDACTED",
]


# Redaction configuration

REDACT_FIELDS = {
    # Address fields
    "address",
    "address1",
    "address2",
    "street",
    "city",
    "province",
    "postal_code",
    "zip",
    "country",
    # Personal info
    "first_name",
    "last_name",
    "phone",
    "email",
    "company",
    # Credentials
    "access_token",
    "api_key",
    "secret",
}

REDACTED = "[REDACTED]"


def redact_sensitive(
    data: dict | list | str | None, _depth: int = 0
) -> dict | list | str | None:
    """Recursively redact sensitive fields from data structures.

    Scans dictionaries for keys matching known sensitive field names
    and replaces their values with '[REDACTED]'. Handles nested structures.

    Args:
        data: The data structure to redact (dict, list, str, or None)
        _depth: Internal recursion depth counter (prevents infinite loops)

    Returns:
        A copy of the data with sensitive fields redacted.

    Example:
        >>> redact_sensitive({'email': 'a@b.dk', 'amount': 49.5})
        {'email': '[REDACTED]', 'amount': 49.5}
    """
    if _depth > 10:
        return REDACTED
    if data is None:
        return None
    if isinstance(data, str):
        return data
    if isinstance(data, list):
        return [redact_sensitive(item, _depth + 1) for item in data]
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            key_lower = str(key).lower().replace("-", "_")
            if any(field in key_lower for field in REDACT_FIELDS):
                result[key] = REDACTED
            else:
                result[key] = redact_sensitive(value, _depth + 1)
        return result
    return data


class AuditService:
    """Service for thread-scoped agent logging with sensitive data redaction.

    Attributes:
        db: SQLAlchemy session for database operations.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def log(
        self,
        step_name: str,
        status: LogStatus,
        details: dict[str, Any] | None = None,
        thread_id: str | None = None,
        draft_id: str | None = None,
    ) -> AgentLog:
        """Create an agent log entry.

        Core logging method that the other log methods delegate to. The
        details dict is redacted and JSON-encoded into step_detail, and
        the entry is committed immediately.

        Args:
            step_name: Step identifier, e.g. "shopify_action_applied".
            status: success, error or info.
            details: Optional structured data.
            thread_id: Thread the entry belongs to.
            draft_id: Draft the entry belongs to, if any.

        Returns:
            The created AgentLog entry.
        """
        step_detail: str | None = None
        if details is not None:
            step_detail = json.dumps(redact_sensitive(details), ensure_ascii=False)

        entry = AgentLog(
            thread_id=thread_id,
            draft_id=draft_id,
            step_name=step_name,
            step_detail=step_detail,
            status=status.value,
            created_at=utc_now_iso(),
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def log_success(self, thread_id: str | None, step_name: str, details: dict[str, Any]) -> AgentLog:
        return self.log(step_name, LogStatus.success, details, thread_id=thread_id)

    def log_error(self, thread_id: str | None, step_name: str, details: dict[str, Any]) -> AgentLog:
        return self.log(step_name, LogStatus.error, details, thread_id=thread_id)

    def log_info(self, thread_id: str | None, step_name: str, details: dict[str, Any]) -> AgentLog:
        return self.log(step_name, LogStatus.info, details, thread_id=thread_id)

    def get_entry(self, log_id: str) -> AgentLog | None:
        return self.db.query(AgentLog).filter(AgentLog.id == log_id).first()
