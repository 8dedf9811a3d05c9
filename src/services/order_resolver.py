"""Map loose order references to platform order ids.

A reference may be an order number ("1001"), an order name ("#1001") or
already the platform's numeric id. The caller supplies a map built from a
recent order search. This module does not call the platform itself; live
lookups for the approval path go through ShopifyAdminClient.find_order.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from src.errors import OrderIdUnresolvedError
from src.services.action_normalizer import as_number

logger = logging.getLogger(__name__)


def _id_string(value: Any) -> str | None:
    numeric = as_number(value)
    if not numeric or numeric < 0 or not float(numeric).is_integer():
        return None
    return str(int(numeric))


def build_order_id_map(orders: Iterable[Mapping[str, Any]]) -> dict[str, str]:
    """Build the reference -> numeric id map from an order search result.

    Each order contributes its order_number, its name without the leading
    ``#``, and its id, all mapping to the numeric id.

    Args:
        orders: Shopify order dicts with id, name and order_number.

    Returns:
        Dict of string reference to numeric id string.
    """
    mapping: dict[str, str] = {}
    for order in orders:
        order_id = _id_string(order.get("id"))
        if not order_id:
            continue
        if order.get("order_number") is not None:
            mapping[str(order["order_number"]).strip()] = order_id
        name = str(order.get("name") or "").strip()
        if name:
            mapping[name.lstrip("#")] = order_id
        mapping[order_id] = order_id
    return mapping


def resolve_order_id(order_ref: Any, order_id_map: Mapping[Any, Any] | None = None) -> str:
    """Resolve a loose order reference to the platform's numeric id.

    Resolution order: the map keyed by the reference with a leading ``#``
    stripped, then the map keyed by the raw reference, then the raw value
    itself if it is numeric.

    Args:
        order_ref: Order number, name or numeric id.
        order_id_map: Caller-built map (see build_order_id_map).

    Returns:
        Numeric order id as a string.

    Raises:
        OrderIdUnresolvedError: Neither the map nor numeric coercion yields
            a valid id.
    """
    raw = str(order_ref if order_ref is not None else "").strip()
    mapping = {str(k): v for k, v in (order_id_map or {}).items()}

    candidate = mapping.get(raw.replace("#", "", 1))
    if candidate is None:
        candidate = mapping.get(raw)
    if candidate is None:
        candidate = raw

    resolved = _id_string(candidate)
    if not resolved:
        logger.warning(
            "Order id unresolved: ref=%r available_keys=%d", order_ref, len(mapping)
        )
        raise OrderIdUnresolvedError(order_ref)
    return resolved
