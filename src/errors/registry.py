"""Error code registry with E-XXXX format codes.

This module defines the error code system for the automation pipeline,
organizing errors into categories:
- E-1xxx: Action payload errors
- E-2xxx: Order resolution errors
- E-3xxx: Commerce platform errors
- E-4xxx: System/internal errors
- E-5xxx: Credential errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    PAYLOAD = "payload"  # E-1xxx: Action payload errors
    ORDER = "order"  # E-2xxx: Order resolution errors
    PLATFORM = "platform"  # E-3xxx: Commerce platform errors
    SYSTEM = "system"  # E-4xxx: System/internal errors
    CREDENTIALS = "credentials"  # E-5xxx: Credential errors


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action the operator should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str  # E-XXXX format
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False


# Error registry - all defined error codes
ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Payload errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.PAYLOAD,
        title="Invalid Action Payload",
        message_template="{details}",
        remediation="Correct the proposed action payload and resubmit.",
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.PAYLOAD,
        title="Unsupported Action Type",
        message_template="Unsupported action type: {action_type}",
        remediation="Use one of the supported order action types.",
    ),
    # Order resolution errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.ORDER,
        title="Order Id Unresolved",
        message_template="Could not resolve order id from '{order_ref}'.",
        remediation="Provide a numeric order id or an order number present in the order map.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.ORDER,
        title="Order Not Found",
        message_template="Could not find Shopify order for {order_ref}.",
        remediation="Check that the order exists in the connected store.",
    ),
    "E-2003": ErrorCode(
        code="E-2003",
        category=ErrorCategory.ORDER,
        title="Fulfillment Order Not Found",
        message_template="No fulfillment order found for order {order_id}.",
        remediation="The order may already be fulfilled. Check it in the Shopify admin.",
    ),
    # Platform errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.PLATFORM,
        title="Shopify Request Failed",
        message_template="{details}",
        remediation="Review the upstream error. The action was not retried.",
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.PLATFORM,
        title="Shopify Request Timed Out",
        message_template="Shopify did not respond within {timeout} seconds.",
        remediation="Check the order in the Shopify admin before resubmitting.",
        is_retryable=True,
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.PLATFORM,
        title="Order Edit Failed",
        message_template="{details}",
        remediation="Discard any open order edit in the Shopify admin and resubmit.",
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Database Error",
        message_template="Database operation failed: {details}",
        remediation="This is a system error. Retry the operation. Contact support if issue persists.",
        is_retryable=True,
    ),
    # Credential errors (E-5xxx)
    "E-5001": ErrorCode(
        code="E-5001",
        category=ErrorCategory.CREDENTIALS,
        title="Shopify Not Connected",
        message_template="Shopify is not connected.",
        remediation="Install the Shopify app for this account or workspace.",
    ),
    "E-5002": ErrorCode(
        code="E-5002",
        category=ErrorCategory.CREDENTIALS,
        title="Credential Decryption Failed",
        message_template="Stored Shopify credentials could not be decrypted.",
        remediation="Check SONA_ENCRYPTION_KEY matches the key used at install time, or reinstall the app.",
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category.

    Args:
        category: The error category to filter by.

    Returns:
        List of ErrorCode objects in the specified category.
    """
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
