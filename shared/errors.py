"""
Shared error handling for the Device Registry service.

Every failure surfaced to a caller is a ``RegistryException`` subclass
tagged with one of five kinds. The HTTP layer maps ``status_code`` and
renders ``to_response()``.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class RegistryException(Exception):
    """Base exception for the Device Registry service."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class InvalidInputError(RegistryException):
    """Malformed or missing required field."""

    status_code = 400

    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_INPUT", message, details)


class UnauthorizedError(RegistryException):
    """Credential mismatch."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__("UNAUTHORIZED", message, details)


class NotFoundError(RegistryException):
    """Principal or owned resource absent."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ConflictError(RegistryException):
    """Uniqueness or state violation."""

    status_code = 409

    def __init__(self, message: str = "Conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT", message, details)


class UpstreamFailureError(RegistryException):
    """Delegated call failed, timed out or answered garbage."""

    status_code = 502

    def __init__(self, service: str, message: str = "Upstream call failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_FAILURE", f"{service}: {message}", details)


class RecordNotFoundError(Exception):
    """Raised by storage backends when a strict lookup matches nothing.

    Not a caller-facing error: services translate it into ``None`` or a
    ``NotFoundError`` with their own message.
    """

    def __init__(self, entity: str, **criteria: Any):
        self.entity = entity
        self.criteria = criteria
        super().__init__(f"{entity} not found for {criteria}")
