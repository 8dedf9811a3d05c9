"""Service layer for Sona automation.

Provides action execution, the approval ledger and audit logging.
"""

from src.services.action_ledger import ActionLedgerService, InvalidActionTransition
from src.services.audit_service import AuditService, redact_sensitive

__all__ = [
    "ActionLedgerService",
    "InvalidActionTransition",
    "AuditService",
    "redact_sensitive",
]
