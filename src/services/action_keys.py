"""Content-derived action keys for ledger deduplication.

The key for an action is ``<type>::<order id>::<stable payload>``. The
stable payload serialization sorts object keys recursively and keeps
array order, so the source payload's key order never changes the key.
Re-proposing a logically identical action resolves to the same ledger row.
"""

import json
import math
from typing import Any


def _scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if not math.isfinite(value):
            return "null"
        # Integral floats render without a fraction (49.0 -> 49)
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    return json.dumps(str(value), ensure_ascii=False)


def stable_stringify(value: Any) -> str:
    """Serialize a JSON-like value with recursively sorted object keys.

    Args:
        value: Dicts, lists/tuples and JSON scalars.

    Returns:
        Compact JSON text, identical for dicts that differ only in key order.
    """
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(stable_stringify(item) for item in value) + "]"
    if isinstance(value, dict):
        parts = [
            f"{json.dumps(str(key), ensure_ascii=False)}:{stable_stringify(value[key])}"
            for key in sorted(value, key=str)
        ]
        return "{" + ",".join(parts) + "}"
    return _scalar(value)


def build_action_key(action_type: str, order_id: Any, payload: dict[str, Any] | None) -> str:
    """Build the dedup key for an action.

    Args:
        action_type: Action type tag (case-insensitive).
        order_id: Resolved order id.
        payload: Canonical payload dict.

    Returns:
        ``<lowercased type>::<order id>::<stable payload>``.
    """
    type_part = str(getattr(action_type, "value", action_type) or "").strip().lower()
    order_part = "" if order_id is None else str(order_id).strip()
    return (
        f"{type_part}::{order_part}::"
        f"{stable_stringify(payload or {})}"
    )
