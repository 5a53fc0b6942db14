"""
Custom exceptions for the service layer.

Services raise these instead of HTTP errors; the FastAPI app translates them
into responses (see danceapp.main).
"""
from typing import Any, Optional


class ServiceError(Exception):
    """Base exception for service layer errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ServiceError):
    """Raised when input fails a domain rule. Always raised before any write."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, token: Optional[str] = None):
        self.field = field
        self.token = token
        super().__init__(message)


class NotFoundError(ServiceError):
    """Raised when a requested resource is not found."""

    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class ConflictError(ServiceError):
    """Raised when an operation conflicts with existing state."""

    status_code = 409


class ForbiddenError(ServiceError):
    """Raised by the permission checks used at the API boundary."""

    status_code = 403


class PersistenceError(ServiceError):
    """Raised when a multi-row write fails and was rolled back."""

    status_code = 500
