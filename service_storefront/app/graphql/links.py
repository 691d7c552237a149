"""
Composable stages of the outbound GraphQL pipeline.

Each link is an async callable ``link(request, forward)`` that may act before
and after handing the request to the next link. The terminal transport link
performs the HTTP call. The client assembles them outermost first:

    LoggingLink -> ErrorLink -> CircuitBreakerLink -> TimeoutLink
        -> RetryLink -> AuthLink -> HttpTransportLink
"""

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Sequence, Tuple, TYPE_CHECKING

import httpx

from storefront_shared.circuit_breaker import CircuitBreaker
from storefront_shared.config import StorefrontConfig
from storefront_shared.errors import CircuitOpenError, StorefrontError
from storefront_shared.logging import GraphQLLogger, get_logger, summarize_variables
from storefront_shared.retry import RetryConfig, call_with_retry

from ..context import RequestContext
from .error_mapper import (
    GraphQLErrorMapper,
    GraphQLResponseError,
    NetworkError,
    counts_as_breaker_failure,
    is_retryable,
)
from .operations import GraphQLOperation

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from storefront_shared.metrics import StorefrontMetrics


@dataclass
class GraphQLRequest:
    """One outbound operation travelling through the links."""
    operation: GraphQLOperation
    variables: Dict[str, Any] = field(default_factory=dict)
    context: Optional[RequestContext] = None
    timeout_ms: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def operation_name(self) -> str:
        return self.operation.name

    @property
    def trace_id(self) -> Optional[str]:
        return self.context.trace_id if self.context else None


@dataclass(frozen=True)
class GraphQLResult:
    """Successful response data plus Set-Cookie values for the caller to apply."""
    data: Any
    response_cookies: Tuple[str, ...] = ()


NextLink = Callable[[GraphQLRequest], Awaitable[GraphQLResult]]


class LoggingLink:
    """Logs start, duration and outcome of every operation."""

    def __init__(self, metrics: Optional["StorefrontMetrics"] = None):
        self.metrics = metrics

    async def __call__(self, request: GraphQLRequest, forward: NextLink) -> GraphQLResult:
        name = request.operation_name
        timer = GraphQLLogger.start(name, request.variables, request.trace_id)

        try:
            result = await forward(request)
        except Exception as exc:
            duration = timer.fail(exc)
            GraphQLLogger.error(name, exc, duration, request.trace_id)
            self._record(name, getattr(exc, "code", "error"), timer.elapsed_ms)
            raise

        duration = timer.end()
        GraphQLLogger.success(name, duration, request.trace_id)
        self._record(name, "success", timer.elapsed_ms)
        return result

    def _record(self, operation: str, outcome: str, elapsed_ms: float) -> None:
        if self.metrics is not None:
            self.metrics.record_graphql_operation(operation, outcome, elapsed_ms / 1000)


class ErrorLink:
    """Classifies every failure into the StorefrontError taxonomy."""

    logger = get_logger("storefront.graphql.errors")

    async def __call__(self, request: GraphQLRequest, forward: NextLink) -> GraphQLResult:
        try:
            return await forward(request)
        except StorefrontError:
            raise
        except Exception as exc:
            if isinstance(exc, GraphQLResponseError):
                self.logger.warning(
                    "GraphQL errors in response",
                    operation=request.operation_name,
                    trace_id=request.trace_id,
                    codes=exc.codes,
                    partial_data=exc.data is not None,
                )
            raise GraphQLErrorMapper.map_error(
                exc,
                request.operation_name,
                request.trace_id,
                summarize_variables(request.variables),
            ) from exc


class CircuitBreakerLink:
    """Rejects calls fast while the shared breaker is open."""

    def __init__(self, breaker: CircuitBreaker, metrics: Optional["StorefrontMetrics"] = None):
        self.breaker = breaker
        self.metrics = metrics

    async def __call__(self, request: GraphQLRequest, forward: NextLink) -> GraphQLResult:
        if not self.breaker.allow_request():
            raise CircuitOpenError(
                self.breaker.name,
                self.breaker.state.value,
                {"operation": request.operation_name},
                request.trace_id,
            )

        try:
            result = await forward(request)
        except Exception as exc:
            if counts_as_breaker_failure(exc):
                self.breaker.record_failure()
            else:
                self.breaker.record_success()
            raise
        else:
            self.breaker.record_success()
        finally:
            self.breaker.release_trial()
            self._publish_state()

        return result

    def _publish_state(self) -> None:
        if self.metrics is not None:
            self.metrics.set_circuit_state(self.breaker.name, self.breaker.state.value)


class TimeoutLink:
    """Stops waiting for the rest of the chain after a wall-clock budget."""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms

    async def __call__(self, request: GraphQLRequest, forward: NextLink) -> GraphQLResult:
        timeout_ms = request.timeout_ms or self.timeout_ms
        try:
            return await asyncio.wait_for(forward(request), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise NetworkError(
                f"GraphQL operation '{request.operation_name}' timeout after {timeout_ms}ms",
                timeout_ms=timeout_ms,
            ) from None


class RetryLink:
    """Retries network-level failures with exponential backoff and jitter."""

    def __init__(self, config: RetryConfig, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.config = config
        self.sleep = sleep

    async def __call__(self, request: GraphQLRequest, forward: NextLink) -> GraphQLResult:
        return await call_with_retry(
            lambda: forward(request),
            self.config,
            retry_if=is_retryable,
            sleep=self.sleep,
            name=request.operation_name,
        )


class AuthLink:
    """Adds credentials, locale/trace headers and allow-listed cookies."""

    def __init__(self, config: StorefrontConfig, allowed_cookies: Optional[Iterable[str]] = None):
        self.config = config
        self.allowed_cookies = frozenset(
            config.forwarded_cookies if allowed_cookies is None else allowed_cookies
        )

    def build_headers(self, request: GraphQLRequest) -> Dict[str, str]:
        headers = dict(request.headers)
        headers.update(self.config.auth_headers())

        context = request.context
        if context is None:
            return headers

        if context.locale:
            headers["accept-language"] = context.locale
        if context.user_agent:
            headers["user-agent"] = context.user_agent
        if context.trace_id:
            headers["x-trace-id"] = context.trace_id

        cookie_header = "; ".join(
            f"{name}={value}" for name, value in context.cookies.items() if name in self.allowed_cookies
        )
        if cookie_header:
            headers["cookie"] = cookie_header
        return headers

    async def __call__(self, request: GraphQLRequest, forward: NextLink) -> GraphQLResult:
        return await forward(replace(request, headers=self.build_headers(request)))


class HttpTransportLink:
    """Terminal link: POSTs the operation to the GraphQL endpoint."""

    def __init__(self, endpoint: str, transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout_s: float = 10.0):
        self.endpoint = endpoint
        self.transport = transport
        self.timeout_s = timeout_s

    async def __call__(self, request: GraphQLRequest) -> GraphQLResult:
        payload = {
            "query": request.operation.document,
            "variables": request.variables,
            "operationName": request.operation_name,
        }

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout_s) as client:
                response = await client.post(self.endpoint, json=payload, headers=request.headers)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"Request timeout: {type(exc).__name__}") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"Connection error: {type(exc).__name__}") from exc

        status = response.status_code
        if status < 200 or status >= 300:
            raise NetworkError(
                f"HTTP {status}",
                status_code=status,
                retry_after=_retry_after(response),
            )

        try:
            body = response.json()
        except ValueError:
            raise NetworkError("Malformed JSON response", status_code=status) from None
        if not isinstance(body, dict):
            raise NetworkError("Malformed GraphQL response", status_code=status)

        errors = body.get("errors") or []
        data = body.get("data")
        if errors:
            if not isinstance(errors, list):
                errors = [errors]
            raise GraphQLResponseError([e if isinstance(e, dict) else {} for e in errors], data)
        if data is None:
            raise GraphQLResponseError([], None, "GraphQL response contained no data")

        return GraphQLResult(data=data, response_cookies=tuple(response.headers.get_list("set-cookie")))


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def compose_links(links: Sequence[Callable[[GraphQLRequest, NextLink], Awaitable[GraphQLResult]]],
                  terminal: NextLink) -> NextLink:
    """Chain links around the terminal handler, first link outermost."""
    handler = terminal
    for link in reversed(links):
        handler = _bind(link, handler)
    return handler


def _bind(link, forward: NextLink) -> NextLink:
    async def handler(request: GraphQLRequest) -> GraphQLResult:
        return await link(request, forward)
    return handler
