"""
Shared error handling for the Credit Gateway.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


# Reconciliation outcome codes written to the work queue
BURN_ERROR_CODE = "BURN-001"
UPDATE_ERROR_CODE = "UPDATE-001"


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for Credit Gateway services."""

    status_code: int = 400

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


class ConfigurationError(AccessLayerException):
    """Mandatory configuration is missing or invalid."""

    status_code = 500

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class ExternalServiceError(AccessLayerException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class AssetNotFoundError(AccessLayerException):
    """The asset registry has no descriptor for an identifier."""

    status_code = 404

    def __init__(self, asset_id: str):
        super().__init__("ASSET_NOT_FOUND", f"Asset not found: {asset_id}", {"asset_id": asset_id})


# Request-time denials. All of them surface to the proxy as an opaque 401.

class AuthorizationDenied(AccessLayerException):
    """Base class for reasons the authorization engine denies a request."""

    status_code = 401


class InvalidTokenError(AuthorizationDenied):
    """Token could not be decrypted, failed integrity checks, or is expired."""

    def __init__(self, message: str = "Invalid token", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_TOKEN", message, details)


class BadRequestedUrlError(AuthorizationDenied):
    """The requested upstream URL header is missing or malformed."""

    def __init__(self, message: str = "Bad requested URL", details: Optional[Dict[str, Any]] = None):
        super().__init__("BAD_REQUESTED_URL", message, details)


class EndpointNotGrantedError(AuthorizationDenied):
    """The requested path matches none of the granted endpoints."""

    def __init__(self, message: str = "Endpoint not granted", details: Optional[Dict[str, Any]] = None):
        super().__init__("ENDPOINT_NOT_GRANTED", message, details)


class SubscriptionValidationFailedError(AuthorizationDenied):
    """Subscription balance could not be validated or is insufficient."""

    def __init__(self, message: str = "Subscription validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("SUBSCRIPTION_VALIDATION_FAILED", message, details)


class UnauthorizedError(AuthorizationDenied):
    """No token and no open endpoint applies."""

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__("UNAUTHORIZED", message, details)


class UpstreamResolutionTimeoutError(AuthorizationDenied):
    """The decision did not complete within the configured timeout."""

    def __init__(self, message: str = "Upstream resolution timed out", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_RESOLUTION_TIMEOUT", message, details)


# Reconciliation-side errors

class InvalidRecordError(AccessLayerException):
    """A usage record can not be billed (missing ids or failed upstream call)."""

    def __init__(self, message: str = "Invalid usage record", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_RECORD", message, details)


class QueueUnavailableError(AccessLayerException):
    """The durable work queue can not be reached or queried."""

    status_code = 503

    def __init__(self, message: str = "Work queue unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("QUEUE_UNAVAILABLE", message, details)
