"""Tests for the thread-scoped audit log."""

import json

from src.db.models import LogStatus
from src.services.audit_service import REDACTED, AuditService, redact_sensitive
from tests.conftest import THREAD_ID


class TestRedactSensitive:
    """Tests for PII and credential redaction."""

    def test_redacts_address_and_contact_fields(self):
        details = {
            "action": "update_shipping_address",
            "payload": {"address1": "Nørregade 1", "zip": "1165", "email": "ada@example.com"},
            "amount": 49.5,
        }
        assert redact_sensitive(details) == {
            "action": "update_shipping_address",
            "payload": {"address1": REDACTED, "zip": REDACTED, "email": REDACTED},
            "amount": 49.5,
        }

    def test_substring_and_dash_keys(self):
        assert redact_sensitive({"shipping_address": {"a": 1}, "X-Api-Key": "k"}) == {
            "shipping_address": REDACTED,
            "X-Api-Key": REDACTED,
        }

    def test_lists_and_scalars_pass_through(self):
        assert redact_sensitive([{"phone": "+45"}, "text", 3]) == [{"phone": REDACTED}, "text", 3]
        assert redact_sensitive(None) is None
        assert redact_sensitive("plain") == "plain"


class TestAuditService:
    """Tests for writing and reading agent_logs entries."""

    def test_log_redacts_before_persisting(self, db_session):
        entry = AuditService(db_session).log_success(
            THREAD_ID, "shopify_action_applied", {"action": "add_tag", "email": "ada@example.com"}
        )
        assert entry.status == LogStatus.success.value
        assert json.loads(entry.step_detail) == {"action": "add_tag", "email": REDACTED}

    def test_error_and_info_statuses(self, db_session):
        audit = AuditService(db_session)
        failed = audit.log_error(THREAD_ID, "shopify_action_failed", {"error": "boom"})
        queued = audit.log_info(THREAD_ID, "shopify_action_pending", {"action": "cancel_order"})
        assert failed.status == LogStatus.error.value
        assert queued.status == LogStatus.info.value
        assert audit.get_entry(failed.id).thread_id == THREAD_ID

    def test_get_entry_unknown(self, db_session):
        assert AuditService(db_session).get_entry("missing") is None
