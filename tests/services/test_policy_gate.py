"""Tests for the automation policy gate."""

import pytest

from src.db.models import ActionType, AutomationSettings
from src.models.actions import AutomationPolicy
from src.services.policy_gate import POLICY_TABLE, check_policy, load_automation_policy

ALL_OFF = AutomationPolicy(
    order_updates=False, cancel_orders=False, automatic_refunds=False
)


class TestCheckPolicy:
    """Tests for check_policy."""

    def test_every_action_type_is_governed(self):
        """Each action type maps to exactly one toggle."""
        assert set(POLICY_TABLE) == set(ActionType)

    @pytest.mark.parametrize("action_type", list(ActionType))
    def test_everything_denied_when_all_off(self, action_type):
        decision = check_policy(action_type, ALL_OFF)
        assert decision.allowed is False
        assert decision.reason

    @pytest.mark.parametrize("action_type", list(ActionType))
    def test_allowed_when_only_governing_flag_is_on(self, action_type):
        flag, _ = POLICY_TABLE[action_type]
        policy = ALL_OFF.model_copy(update={flag: True})
        decision = check_policy(action_type, policy)
        assert decision.allowed is True
        assert decision.reason is None

    def test_defaults_allow_updates_and_cancels_but_gate_refunds(self):
        defaults = AutomationPolicy()
        assert check_policy(ActionType.add_tag, defaults).allowed
        assert check_policy(ActionType.cancel_order, defaults).allowed
        decision = check_policy(ActionType.refund_order, defaults)
        assert decision.allowed is False
        assert decision.reason == "automatic refunds are disabled."

    def test_cancel_reason(self):
        decision = check_policy(
            ActionType.cancel_order, AutomationPolicy(cancel_orders=False)
        )
        assert decision.reason == "cancellations are disabled."

    def test_unknown_type_is_allowed(self):
        assert check_policy("teleport_order", ALL_OFF).allowed is True


class TestLoadAutomationPolicy:
    """Tests for loading stored toggles."""

    def test_missing_row_yields_defaults(self, db_session):
        policy = load_automation_policy(db_session, "nobody")
        assert policy == AutomationPolicy()

    def test_missing_row_uses_supplied_defaults(self, db_session):
        defaults = AutomationPolicy(automatic_refunds=True)
        assert load_automation_policy(db_session, "nobody", defaults=defaults) is defaults

    def test_stored_row_is_used(self, db_session):
        db_session.add(
            AutomationSettings(
                user_id="user-1",
                order_updates=False,
                cancel_orders=True,
                automatic_refunds=True,
                historic_inbox_access=False,
            )
        )
        db_session.commit()
        policy = load_automation_policy(db_session, "user-1")
        assert policy.order_updates is False
        assert policy.automatic_refunds is True

    def test_override_wins(self, db_session):
        db_session.add(AutomationSettings(user_id="user-1", order_updates=False))
        db_session.commit()
        policy = load_automation_policy(db_session, "user-1", {"order_updates": True})
        assert policy.order_updates is True
