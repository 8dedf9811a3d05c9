"""Typed domain exceptions for API error mapping.

These exceptions provide stronger API contract guarantees than
string-based error message matching. Each carries the HTTP status the
API layer should answer with.

Usage:
    # In service layer
    raise NotFoundError("Action", action_id)

    # In route handler
    try:
        record = ledger.get(action_id)
    except NotFoundError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    http_status = 404

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ConflictError(DomainError):
    """Resource conflict (e.g. deciding an already resolved action). Maps to HTTP 409."""

    http_status = 409


class ValidationError(DomainError):
    """Validation failure. Maps to HTTP 400."""

    http_status = 400


class PermissionDeniedError(DomainError):
    """Caller does not own the resource. Maps to HTTP 403."""

    http_status = 403
