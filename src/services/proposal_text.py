"""Best-effort recovery of structured actions from free-text proposals.

Older proposals were stored as plain sentences ("Updated shipping address
to ...") or loosely shaped JSON log entries. These helpers recover what
they can and return None or empty values when nothing could be inferred.
Callers branch on "structured payload present" first and only fall back
to this module when it is not. Nothing here guesses silently.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

from src.db.models import ActionType

_ORDER_NUMBER_RE = re.compile(r"(?:ordre|order)?\s*#?\s*(\d{3,})", re.IGNORECASE)

_ADDRESS_PREFIXES = (
    "updated shipping address to",
    "update shipping address to",
    "updated address to",
)
_ZIP_CITY_RE = re.compile(r"^([a-z]{0,3}-?\d{3,10})\s+(.+)$", re.IGNORECASE)
_ZIP_ONLY_RE = re.compile(r"^[a-z]{0,3}-?\d{3,10}$", re.IGNORECASE)
_DIGIT_RE = re.compile(r"\d")

# Checked in order; the first match wins.
_KEYWORD_ACTIONS: tuple[tuple[str, ActionType], ...] = (
    ("tag", ActionType.add_tag),
    ("invoice", ActionType.resend_confirmation_or_invoice),
    ("contact", ActionType.update_customer_contact),
    ("shipping method", ActionType.change_shipping_method),
    ("fulfillment hold", ActionType.hold_or_release_fulfillment),
    ("line item", ActionType.edit_line_items),
)


@dataclass
class ProposalDetail:
    """Fields recovered from a stored proposal entry."""

    detail_text: str = ""
    order_id: str | None = None
    order_number: str | None = None
    action_type: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


def extract_order_number(value: Any) -> str | None:
    """Return the first order-number-like run of 3+ digits, or None."""
    match = _ORDER_NUMBER_RE.search(str(value or ""))
    return match.group(1) if match else None


def _id_string(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(int(value)) if float(value).is_integer() else str(value)
    if isinstance(value, str):
        return value.strip() or None
    return None


def _first_string(data: dict[str, Any], *keys: str) -> str:
    for key in keys:
        if isinstance(data.get(key), str):
            return data[key]
    return ""


def parse_log_detail(raw: Any) -> ProposalDetail:
    """Parse a stored proposal entry that is either JSON or plain text.

    JSON entries may carry detail/message/summary/text/action for the
    sentence, orderId/order_id/adminId for the id, orderNumber/order_number/
    orderNo for the number, actionType/action for the type, and payload.

    Args:
        raw: The stored step_detail or proposal text.

    Returns:
        ProposalDetail with whatever could be recovered.
    """
    text = str(raw or "").strip()
    if not text:
        return ProposalDetail()

    if text.startswith("{") and text.endswith("}"):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            detail_text = _first_string(parsed, "detail", "message", "summary", "text", "action")
            order_id = _id_string(
                next(
                    (parsed[k] for k in ("orderId", "order_id", "adminId") if parsed.get(k) is not None),
                    None,
                )
            )
            order_number = _id_string(
                next(
                    (
                        parsed[k]
                        for k in ("orderNumber", "order_number", "orderNo")
                        if parsed.get(k) is not None
                    ),
                    None,
                )
            )
            action_type = _first_string(parsed, "actionType", "action").strip()
            payload = parsed.get("payload")
            return ProposalDetail(
                detail_text=detail_text,
                order_id=order_id,
                order_number=order_number or extract_order_number(detail_text),
                action_type=action_type or None,
                payload=payload if isinstance(payload, dict) else {},
            )

    return ProposalDetail(detail_text=text, order_number=extract_order_number(text))


def infer_action_type(text: Any) -> ActionType:
    """Infer an action type from a proposal sentence.

    Falls back to update_shipping_address, which is what untyped legacy
    proposals overwhelmingly were.
    """
    lowered = str(text or "").strip().lower()
    if lowered.startswith("cancel"):
        return ActionType.cancel_order
    if lowered.startswith("refund"):
        return ActionType.refund_order
    for keyword, action_type in _KEYWORD_ACTIONS:
        if keyword in lowered:
            return action_type
    return ActionType.update_shipping_address


def _strip_address_prefix(text: str) -> str:
    cleaned = text.strip()
    for prefix in _ADDRESS_PREFIXES:
        if cleaned.lower().startswith(prefix):
            cleaned = cleaned[len(prefix):].strip()
    return cleaned


def parse_address_from_text(value: Any) -> dict[str, str] | None:
    """Parse an address-change sentence into a Shopify address dict.

    Segments on commas. A leading segment without digits is the name and a
    trailing segment without digits is the country, each only while more
    than one segment remains. One "zip city" segment is detected; a bare
    zip segment directly followed by a digit-free segment is read as zip
    then city. Of what remains, the first two segments are address1 and
    address2.

    Args:
        value: Sentence such as "Updated shipping address to Jonas Berg,
            Vesterbrogade 86, 1. tv, 1620, København, Denmark".

    Returns:
        Dict with any of name, address1, address2, zip, city, country, or
        None when nothing could be inferred.
    """
    address_text = _strip_address_prefix(str(value or ""))
    if not address_text:
        return None

    working = [part.strip() for part in address_text.split(",") if part.strip()]
    if not working:
        return None

    name = country = zip_code = city = None

    if not _DIGIT_RE.search(working[0]) and len(working) > 1:
        name = working.pop(0)

    if not _DIGIT_RE.search(working[-1]) and len(working) > 1:
        country = working.pop()

    for idx, segment in enumerate(working):
        match = _ZIP_CITY_RE.match(segment)
        if match:
            zip_code, city = match.group(1).strip(), match.group(2).strip()
            del working[idx]
            break
        next_segment = working[idx + 1] if idx + 1 < len(working) else ""
        if (
            _ZIP_ONLY_RE.match(segment)
            and next_segment
            and not _DIGIT_RE.search(next_segment)
        ):
            zip_code, city = segment, next_segment
            del working[idx:idx + 2]
            break

    address1 = working[0] if working else None
    address2 = working[1] if len(working) > 1 else None

    if not (name or address1 or zip_code or city or country):
        return None

    parsed = {
        "name": name,
        "address1": address1,
        "address2": address2,
        "zip": zip_code,
        "city": city,
        "country": country,
    }
    return {key: value for key, value in parsed.items() if value}


def order_number_from_sources(*sources: Any) -> str | None:
    """Return the first order number found across the given texts."""
    for source in sources:
        number = extract_order_number(source)
        if number:
            return number
    return None
