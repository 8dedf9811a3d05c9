"""Unit tests for src/errors/registry.py and the pipeline exceptions.

Tests verify:
- Every pipeline exception code is registered
- Codes are grouped by category prefix
- Exceptions serialize into the API error envelope
"""

import pytest

from src.errors import (
    AutomationError,
    CredentialsMissingError,
    DecryptionFailedError,
    FulfillmentOrderNotFoundError,
    InvalidPayloadError,
    MutationFailedError,
    OrderIdUnresolvedError,
    OrderNotFoundError,
    PlatformHttpError,
    PlatformTimeoutError,
    UnsupportedActionError,
)
from src.errors.registry import ERROR_REGISTRY, ErrorCategory, get_error, get_errors_by_category

_PREFIX_CATEGORY = {
    "1": ErrorCategory.PAYLOAD,
    "2": ErrorCategory.ORDER,
    "3": ErrorCategory.PLATFORM,
    "4": ErrorCategory.SYSTEM,
    "5": ErrorCategory.CREDENTIALS,
}


@pytest.mark.parametrize(
    "exc_class",
    [
        AutomationError,
        InvalidPayloadError,
        UnsupportedActionError,
        OrderIdUnresolvedError,
        OrderNotFoundError,
        FulfillmentOrderNotFoundError,
        PlatformHttpError,
        PlatformTimeoutError,
        MutationFailedError,
        CredentialsMissingError,
        DecryptionFailedError,
    ],
)
def test_exception_codes_registered(exc_class):
    """Every pipeline exception must point at a registry entry."""
    assert get_error(exc_class.code) is not None, f"{exc_class.code} not found in registry"


def test_codes_match_category_prefix():
    for code, error in ERROR_REGISTRY.items():
        assert error.code == code
        assert error.category == _PREFIX_CATEGORY[code[2]]


def test_get_errors_by_category():
    codes = {e.code for e in get_errors_by_category(ErrorCategory.ORDER)}
    assert codes == {"E-2001", "E-2002", "E-2003"}


def test_unknown_code():
    assert get_error("E-9999") is None


class TestErrorEnvelope:
    """Tests for AutomationError.to_dict."""

    def test_to_dict(self):
        error = OrderNotFoundError("#1001")
        assert error.to_dict() == {
            "code": "E-2002",
            "title": "Order Not Found",
            "message": "Could not find Shopify order for #1001.",
            "remediation": "Check that the order exists in the connected store.",
        }

    def test_http_status_mapping(self):
        assert InvalidPayloadError("x").http_status == 400
        assert PlatformHttpError("x", status_code=422).http_status == 502
        assert PlatformTimeoutError(8.0).http_status == 504

    def test_timeout_message_formats_seconds(self):
        assert str(PlatformTimeoutError(8.0)) == "Shopify did not respond within 8 seconds."

    def test_timeout_is_retryable(self):
        assert get_error(PlatformTimeoutError.code).is_retryable is True
