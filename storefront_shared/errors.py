"""
Shared error taxonomy for the Storefront Access Layer.

Every failure that leaves the GraphQL pipeline is one of the classes below.
Messages and context are safe to render and log: they never carry credentials,
cookie values or raw upstream payloads.
"""

from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field


class ErrorKind(Enum):
    """Classification tags for storefront errors."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    INTERNAL = "internal"


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    status_code: int
    timestamp: str
    details: Dict[str, Any] = Field(default_factory=dict)


class StorefrontError(Exception):
    """Base exception for classified storefront failures."""

    kind: ErrorKind = ErrorKind.INTERNAL
    code: str = "INTERNAL_ERROR"
    default_status_code: int = 500
    is_operational: bool = True

    def __init__(
        self,
        message: str,
        context: Optional[Mapping[str, Any]] = None,
        trace_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self._message = message
        self._context = MappingProxyType(
            {k: v for k, v in (context or {}).items() if v is not None}
        )
        self._trace_id = trace_id
        self._status_code = status_code or self.default_status_code
        self._timestamp = datetime.now(timezone.utc).isoformat()

    @property
    def message(self) -> str:
        return self._message

    @property
    def context(self) -> Mapping[str, Any]:
        return self._context

    @property
    def trace_id(self) -> Optional[str]:
        return self._trace_id

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def timestamp(self) -> str:
        return self._timestamp

    def to_response(self, include_context: bool = False) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=self.trace_id,
            code=self.code,
            message=self.message,
            status_code=self.status_code,
            timestamp=self.timestamp,
            details=dict(self.context) if include_context else {},
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}, trace_id={self.trace_id!r})"


class ValidationError(StorefrontError):
    """Invalid input rejected locally or by the upstream API."""

    kind = ErrorKind.VALIDATION
    code = "VALIDATION_ERROR"
    default_status_code = 400

    def __init__(self, message: str = "Validation failed", field: Optional[str] = None,
                 context: Optional[Mapping[str, Any]] = None, trace_id: Optional[str] = None):
        super().__init__(message, {**(context or {}), "field": field}, trace_id)
        self.field = field


class NotFoundError(StorefrontError):
    """Requested resource does not exist."""

    kind = ErrorKind.NOT_FOUND
    code = "NOT_FOUND"
    default_status_code = 404

    def __init__(self, resource: str, identifier: Optional[str] = None,
                 context: Optional[Mapping[str, Any]] = None, trace_id: Optional[str] = None):
        if identifier:
            message = f"{resource} with identifier '{identifier}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(message, {**(context or {}), "resource": resource, "identifier": identifier}, trace_id)


class UpstreamError(StorefrontError):
    """Remote service failed or answered with an error."""

    kind = ErrorKind.UPSTREAM
    code = "UPSTREAM_ERROR"
    default_status_code = 502

    def __init__(self, message: str = "Upstream service error", status_code: int = 502,
                 service: Optional[str] = None, context: Optional[Mapping[str, Any]] = None,
                 trace_id: Optional[str] = None):
        super().__init__(message, {**(context or {}), "service": service}, trace_id, status_code)
        self.service = service


class CircuitOpenError(UpstreamError):
    """Call rejected because the circuit breaker is open."""

    def __init__(self, circuit: str, state: str = "open",
                 context: Optional[Mapping[str, Any]] = None, trace_id: Optional[str] = None):
        super().__init__(
            f"Circuit breaker '{circuit}' is {state} - call not attempted",
            status_code=503,
            context={**(context or {}), "circuit": circuit, "circuit_state": state},
            trace_id=trace_id,
        )


class RequestTimeoutError(StorefrontError):
    """Operation did not complete within its time budget."""

    kind = ErrorKind.TIMEOUT
    code = "TIMEOUT_ERROR"
    default_status_code = 408

    def __init__(self, operation: str, timeout_ms: Optional[int] = None,
                 context: Optional[Mapping[str, Any]] = None, trace_id: Optional[str] = None):
        if timeout_ms is not None:
            message = f"Operation '{operation}' timed out after {timeout_ms}ms"
        else:
            message = f"Operation '{operation}' timed out"
        super().__init__(message, {**(context or {}), "operation": operation, "timeout_ms": timeout_ms}, trace_id)


class RateLimitError(StorefrontError):
    """Upstream rate limit exceeded."""

    kind = ErrorKind.RATE_LIMIT
    code = "RATE_LIMIT_EXCEEDED"
    default_status_code = 429

    def __init__(self, retry_after: Optional[float] = None,
                 context: Optional[Mapping[str, Any]] = None, trace_id: Optional[str] = None):
        super().__init__(
            "Rate limit exceeded. Please try again later.",
            {**(context or {}), "retry_after": retry_after},
            trace_id,
        )
        self.retry_after = retry_after


class AuthenticationError(StorefrontError):
    """Credentials missing or rejected."""

    kind = ErrorKind.AUTHENTICATION
    code = "AUTHENTICATION_ERROR"
    default_status_code = 401

    def __init__(self, message: str = "Authentication required",
                 context: Optional[Mapping[str, Any]] = None, trace_id: Optional[str] = None):
        super().__init__(message, context, trace_id)


class AuthorizationError(StorefrontError):
    """Authenticated but not allowed."""

    kind = ErrorKind.AUTHORIZATION
    code = "AUTHORIZATION_ERROR"
    default_status_code = 403

    def __init__(self, message: str = "Access denied",
                 context: Optional[Mapping[str, Any]] = None, trace_id: Optional[str] = None):
        super().__init__(message, context, trace_id)


class InternalError(StorefrontError):
    """Programming defect or unrecognized failure."""

    kind = ErrorKind.INTERNAL
    code = "INTERNAL_ERROR"
    default_status_code = 500
    is_operational = False

    def __init__(self, message: str = "Internal server error",
                 context: Optional[Mapping[str, Any]] = None, trace_id: Optional[str] = None):
        super().__init__(message, context, trace_id)


def is_operational(error: BaseException) -> bool:
    """Check whether an error is an expected failure mode."""
    if isinstance(error, StorefrontError):
        return error.is_operational
    return False


def safe_message(error: BaseException, production: bool = True) -> str:
    """Message that can be shown to an end user."""
    if isinstance(error, StorefrontError):
        return error.message
    if production:
        return "An unexpected error occurred"
    return str(error)
