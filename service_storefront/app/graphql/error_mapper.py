"""
Classification of raw transport and GraphQL failures.

Links inside the pipeline raise NetworkError, GraphQLResponseError or plain
httpx exceptions; GraphQLErrorMapper turns them into the StorefrontError
taxonomy before anything leaves the pipeline.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from storefront_shared.errors import (
    AuthenticationError,
    AuthorizationError,
    ErrorKind,
    InternalError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    StorefrontError,
    UpstreamError,
    ValidationError,
)

GRAPHQL_SERVICE = "graphql-api"

VALIDATION_CODES = frozenset({"BAD_USER_INPUT", "GRAPHQL_VALIDATION_FAILED", "GRAPHQL_PARSE_FAILED"})
CLIENT_CODES = VALIDATION_CODES | {"UNAUTHENTICATED", "FORBIDDEN", "NOT_FOUND"}
UPSTREAM_STATUS_HINTS = (502, 503, 504)


class NetworkError(Exception):
    """HTTP-level failure talking to the GraphQL endpoint."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 timeout_ms: Optional[int] = None, retry_after: Optional[float] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.timeout_ms = timeout_ms
        self.retry_after = retry_after


class GraphQLResponseError(Exception):
    """Response carried a GraphQL `errors` array (or no data at all).

    Any partial `data` is kept for inspection but never returned to callers.
    """

    def __init__(self, errors: List[Dict[str, Any]], data: Any = None,
                 message: Optional[str] = None):
        super().__init__(message or f"GraphQL response contained {len(errors)} error(s)")
        self.errors = errors
        self.data = data

    @property
    def codes(self) -> List[str]:
        return [str((e.get("extensions") or {}).get("code") or "") for e in self.errors]

    @property
    def first_code(self) -> Optional[str]:
        codes = self.codes
        if not codes:
            return None
        return codes[0] or None


def is_retryable(error: BaseException) -> bool:
    """Only connection failures and 5xx responses are worth retrying."""
    if isinstance(error, NetworkError):
        return error.status_code is None or error.status_code >= 500
    if isinstance(error, httpx.TransportError):
        return True
    return False


def counts_as_breaker_failure(error: BaseException) -> bool:
    """Whether an outcome signals an unhealthy upstream.

    Client-side rejections (bad input, auth, 4xx other than 429) prove the
    upstream is answering and are not counted.
    """
    if isinstance(error, NetworkError):
        status = error.status_code
        return status is None or status >= 500 or status == 429
    if isinstance(error, GraphQLResponseError):
        return error.first_code not in CLIENT_CODES
    if isinstance(error, StorefrontError):
        return error.kind in (ErrorKind.UPSTREAM, ErrorKind.TIMEOUT, ErrorKind.RATE_LIMIT, ErrorKind.INTERNAL)
    return True


class GraphQLErrorMapper:
    """Maps raw pipeline failures to StorefrontError instances."""

    @classmethod
    def map_error(cls,
                  error: BaseException,
                  operation_name: Optional[str] = None,
                  trace_id: Optional[str] = None,
                  variables_summary: Optional[str] = None) -> StorefrontError:
        if isinstance(error, StorefrontError):
            return error

        context = {"operation": operation_name, "variables": variables_summary}
        operation = operation_name or "GraphQL operation"

        if isinstance(error, GraphQLResponseError):
            return cls._map_graphql_error(error, context, trace_id)

        if isinstance(error, NetworkError):
            return cls._map_network_error(error, operation, context, trace_id)

        if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
            return RequestTimeoutError(operation, None, context, trace_id)

        if isinstance(error, httpx.HTTPError):
            return UpstreamError(
                f"Network error: {type(error).__name__}",
                502,
                GRAPHQL_SERVICE,
                context,
                trace_id,
            )

        return InternalError(
            f"Unexpected error during {operation}",
            {**context, "error_type": type(error).__name__},
            trace_id,
        )

    @staticmethod
    def _map_network_error(error: NetworkError, operation: str,
                           context: Dict[str, Any], trace_id: Optional[str]) -> StorefrontError:
        status = error.status_code
        context = {**context, "status_code": status}

        if status == 401:
            return AuthenticationError("GraphQL authentication failed", context, trace_id)
        if status == 403:
            return AuthorizationError("GraphQL authorization failed", context, trace_id)
        if status == 404:
            return NotFoundError("GraphQL endpoint", context.get("operation"), context, trace_id)
        if status == 429:
            return RateLimitError(error.retry_after, context, trace_id)
        if status is not None and status >= 500:
            return UpstreamError(
                f"GraphQL server error: HTTP {status}",
                status if status in UPSTREAM_STATUS_HINTS else 502,
                GRAPHQL_SERVICE,
                context,
                trace_id,
            )

        if "timeout" in error.message.lower():
            return RequestTimeoutError(operation, error.timeout_ms, context, trace_id)

        return UpstreamError(
            f"Network error: {error.message}",
            502,
            GRAPHQL_SERVICE,
            context,
            trace_id,
        )

    @staticmethod
    def _map_graphql_error(error: GraphQLResponseError, context: Dict[str, Any],
                           trace_id: Optional[str]) -> StorefrontError:
        code = error.first_code
        context = {**context, "graphql_code": code, "error_count": len(error.errors)}

        if code == "UNAUTHENTICATED":
            return AuthenticationError("GraphQL authentication failed", context, trace_id)
        if code == "FORBIDDEN":
            return AuthorizationError("GraphQL authorization failed", context, trace_id)
        if code in VALIDATION_CODES:
            return ValidationError("GraphQL request rejected as invalid", None, context, trace_id)
        if code == "NOT_FOUND":
            return NotFoundError("Resource", None, context, trace_id)

        return UpstreamError(
            "GraphQL operation returned errors" if error.errors else "GraphQL response contained no data",
            502,
            GRAPHQL_SERVICE,
            context,
            trace_id,
        )
