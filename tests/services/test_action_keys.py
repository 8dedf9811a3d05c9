"""Tests for action key derivation."""

from src.db.models import ActionType
from src.services.action_keys import build_action_key, stable_stringify


class TestStableStringify:
    """Tests for key-order-independent serialization."""

    def test_key_order_does_not_matter(self):
        a = {"b": 1, "a": {"y": [1, 2], "x": "z"}}
        b = {"a": {"x": "z", "y": [1, 2]}, "b": 1}
        assert stable_stringify(a) == stable_stringify(b)

    def test_array_order_matters(self):
        assert stable_stringify([1, 2]) != stable_stringify([2, 1])

    def test_scalars(self):
        assert stable_stringify({"n": None, "t": True, "f": 49.0, "g": 49.5}) == (
            '{"f":49,"g":49.5,"n":null,"t":true}'
        )

    def test_unicode_kept(self):
        assert stable_stringify({"city": "København"}) == '{"city":"København"}'


class TestBuildActionKey:
    """Tests for build_action_key."""

    def test_format(self):
        key = build_action_key(ActionType.add_tag, "450789469", {"tag": "vip"})
        assert key == 'add_tag::450789469::{"tag":"vip"}'

    def test_type_is_lowercased(self):
        assert build_action_key("ADD_TAG", 1, {}) == "add_tag::1::{}"

    def test_same_action_different_key_order_same_key(self):
        one = build_action_key(
            "update_shipping_address", 1, {"shipping_address": {"city": "A", "zip": "1"}}
        )
        two = build_action_key(
            "update_shipping_address", 1, {"shipping_address": {"zip": "1", "city": "A"}}
        )
        assert one == two

    def test_different_payload_different_key(self):
        assert build_action_key("add_tag", 1, {"tag": "a"}) != build_action_key(
            "add_tag", 1, {"tag": "b"}
        )
