"""Exceptions raised by the action dispatch pipeline.

Each exception maps to an E-XXXX registry code. Per-action errors
(payload, order resolution, platform) become an ``error`` execution
result for that action only; credential errors fail the whole batch.
"""

from typing import Any

from src.errors.domain import DomainError
from src.errors.registry import get_error


class AutomationError(DomainError):
    """Base exception for pipeline failures with a registry code."""

    code = "E-4001"
    http_status = 500

    def to_dict(self) -> dict[str, Any]:
        """Serialize into the API error envelope shape."""
        definition = get_error(self.code)
        return {
            "code": self.code,
            "title": definition.title if definition else None,
            "message": str(self),
            "remediation": definition.remediation if definition else None,
        }


class InvalidPayloadError(AutomationError):
    """Action payload is missing required fields or is malformed."""

    code = "E-1001"
    http_status = 400


class UnsupportedActionError(AutomationError):
    """Action type has no registered handler."""

    code = "E-1002"
    http_status = 400

    def __init__(self, action_type: str) -> None:
        super().__init__(f"Unsupported action type: {action_type}")
        self.action_type = action_type


class OrderIdUnresolvedError(AutomationError):
    """Loose order reference could not be mapped to a platform order id."""

    code = "E-2001"
    http_status = 400

    def __init__(self, order_ref: Any) -> None:
        super().__init__(f"Could not resolve order id from '{order_ref}'.")
        self.order_ref = order_ref


class OrderNotFoundError(AutomationError):
    """Live lookup found no matching order in the store."""

    code = "E-2002"
    http_status = 404

    def __init__(self, order_ref: Any) -> None:
        super().__init__(f"Could not find Shopify order for {order_ref}.")
        self.order_ref = order_ref


class FulfillmentOrderNotFoundError(AutomationError):
    """Order has no fulfillment order to hold or release."""

    code = "E-2003"
    http_status = 404

    def __init__(self, order_id: str) -> None:
        super().__init__(f"No fulfillment order found for order {order_id}.")
        self.order_id = order_id


class PlatformHttpError(AutomationError):
    """Commerce platform answered with a non-2xx status or a GraphQL error."""

    code = "E-3001"
    http_status = 502

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PlatformTimeoutError(AutomationError):
    """Commerce platform call exceeded the per-call timeout."""

    code = "E-3002"
    http_status = 504

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Shopify did not respond within {timeout:g} seconds.")
        self.timeout = timeout


class MutationFailedError(AutomationError):
    """Order-edit transaction step returned user errors or no result.

    Attributes:
        calculated_order_id: Edit session opened before the failure, if
            any. It is not discarded automatically.
    """

    code = "E-3003"
    http_status = 502

    def __init__(self, message: str, calculated_order_id: str | None = None) -> None:
        super().__init__(message)
        self.calculated_order_id = calculated_order_id


class CredentialsMissingError(AutomationError):
    """No installed commerce connection for the merchant."""

    code = "E-5001"
    http_status = 400

    def __init__(self, message: str = "Shopify is not connected.") -> None:
        super().__init__(message)


class DecryptionFailedError(AutomationError):
    """Stored access token is malformed or the key is wrong."""

    code = "E-5002"
    http_status = 500

    def __init__(
        self, message: str = "Stored Shopify credentials could not be decrypted."
    ) -> None:
        super().__init__(message)
