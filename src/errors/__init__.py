"""Error handling framework for the automation pipeline.

This package provides:
- Error code registry with E-XXXX format codes
- Typed domain exceptions carrying HTTP status mappings
- Pipeline exceptions for payload, order, platform and credential failures

Error categories:
- E-1xxx: Action payload errors
- E-2xxx: Order resolution errors
- E-3xxx: Commerce platform errors
- E-4xxx: System/internal errors
- E-5xxx: Credential errors
"""

from src.errors.automation import (
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
from src.errors.domain import (
    ConflictError,
    DomainError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from src.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Domain
    "DomainError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "PermissionDeniedError",
    # Pipeline
    "AutomationError",
    "InvalidPayloadError",
    "UnsupportedActionError",
    "OrderIdUnresolvedError",
    "OrderNotFoundError",
    "FulfillmentOrderNotFoundError",
    "PlatformHttpError",
    "PlatformTimeoutError",
    "MutationFailedError",
    "CredentialsMissingError",
    "DecryptionFailedError",
]
