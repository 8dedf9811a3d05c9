"""Secret redaction for log lines and persisted error messages.

Shop access tokens travel in request headers and occasionally echo back in
platform error bodies. Dicts are passed through redact_for_logging before
they are logged, and error text through sanitize_error_message before it is
written to the ledger's error column.
"""

import re
from typing import Any

_REDACTED = "***REDACTED***"

_SENSITIVE_KEY_PARTS = frozenset({
    "secret", "token", "authorization", "api_key", "password", "credential",
})


def redact_for_logging(obj: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of obj with values under sensitive keys replaced.

    Keys match case-insensitively by substring. Nested dicts and lists of
    dicts are walked recursively; the input is not mutated.
    """
    result: dict[str, Any] = {}
    for key, value in obj.items():
        if any(part in str(key).lower() for part in _SENSITIVE_KEY_PARTS):
            result[key] = _REDACTED
        elif isinstance(value, dict):
            result[key] = redact_for_logging(value)
        elif isinstance(value, list):
            result[key] = [
                redact_for_logging(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value
    return result


_SENSITIVE_KEYWORDS = r"secret|token|password|api_key|authorization|credential"
_SENSITIVE_VALUE_PATTERNS = re.compile(
    r"(?i)"
    r"(?:"
    # Shopify Admin API tokens (shpat_, shpca_, shppa_, shpss_)
    r"\bshp(?:at|ca|pa|ss)_[0-9a-f]{8,}"
    r"|"
    r"X-Shopify-Access-Token\s*:\s*\S+"
    r"|"
    r'"(?:' + _SENSITIVE_KEYWORDS + r')"\s*:\s*"[^"]*"'
    r"|"
    r"(?:" + _SENSITIVE_KEYWORDS + r")\s*[=:]\s*\S+"
    r")",
)


def sanitize_error_message(msg: str | None, max_length: int = 2000) -> str | None:
    """Sanitize an error message for safe DB persistence.

    Redacts token-looking values and truncates to max_length.

    Args:
        msg: Error message to sanitize (None passes through).
        max_length: Maximum length of the sanitized message.

    Returns:
        Sanitized and truncated message, or None.
    """
    if msg is None:
        return None
    sanitized = _SENSITIVE_VALUE_PATTERNS.sub(_REDACTED, msg)
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length - 3] + "..."
    return sanitized
