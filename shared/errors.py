"""
Shared error handling for the Storefront backend.
"""

from typing import Dict, Any, Iterable, Optional
from pydantic import BaseModel, Field

from shared.logging import get_request_id


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class StorefrontException(Exception):
    """Base exception for Storefront services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=get_request_id(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthenticationError(StorefrontException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class AuthorizationError(StorefrontException):
    """Authorization-related errors."""

    status_code = 403

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class ValidationError(StorefrontException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class InvalidEntityTypeError(ValidationError):
    """Raised when a cache management call names an unknown entity type."""

    def __init__(self, entity_type: str, valid_types: Iterable[str]):
        valid = sorted(valid_types)
        super().__init__(
            f"Invalid entity type '{entity_type}'. Valid types: {', '.join(valid)}",
            {"entity_type": entity_type, "valid_types": valid},
        )
        self.code = "INVALID_ENTITY_TYPE"


class CacheBackendError(StorefrontException):
    """Cache storage failure. Handled inside the cache layer, never sent to clients."""

    status_code = 503

    def __init__(self, backend: str, message: str = "Cache backend error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_BACKEND_ERROR", f"{backend}: {message}", details)
        self.backend = backend


class CacheSerializationError(CacheBackendError):
    """Value could not be converted to the backend's JSON representation."""

    def __init__(self, backend: str, key: str, error: Exception):
        super().__init__(backend, f"value for '{key}' is not JSON serializable", {"key": key, "error": str(error)})
        self.code = "CACHE_SERIALIZATION_ERROR"
