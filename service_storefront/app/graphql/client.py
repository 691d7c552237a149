"""
Request-scoped GraphQL clients and the factory that builds them.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Type, TypeVar, Union

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from storefront_shared.circuit_breaker import CircuitBreaker
from storefront_shared.config import StorefrontConfig
from storefront_shared.errors import UpstreamError
from storefront_shared.logging import get_logger
from storefront_shared.metrics import StorefrontMetrics
from storefront_shared.retry import RetryConfig

from ..context import RequestContext
from .error_mapper import GRAPHQL_SERVICE
from .links import (
    AuthLink,
    CircuitBreakerLink,
    ErrorLink,
    GraphQLRequest,
    GraphQLResult,
    HttpTransportLink,
    LoggingLink,
    RetryLink,
    TimeoutLink,
    compose_links,
)
from .operations import GraphQLOperation

ModelT = TypeVar("ModelT", bound=BaseModel)


class GraphQLClient:
    """Pipeline bound to a single inbound request.

    A new client is built for every request so nothing (credentials, cookies,
    cached responses) leaks between requests; only the circuit breaker behind
    it is shared.
    """

    def __init__(self, links, transport: HttpTransportLink, context: Optional[RequestContext] = None):
        self.context = context
        self._handler = compose_links(links, transport)

    async def execute(self,
                      operation: GraphQLOperation,
                      variables: Optional[Mapping[str, Any]] = None,
                      context: Optional[RequestContext] = None,
                      timeout_ms: Optional[int] = None) -> GraphQLResult:
        """Run one operation through the pipeline.

        Raises a StorefrontError on every failure path.
        """
        request = GraphQLRequest(
            operation=operation,
            variables=dict(variables or {}),
            context=context or self.context,
            timeout_ms=timeout_ms,
        )
        return await self._handler(request)


class GraphQLClientFactory:
    """Builds request-scoped clients around process-wide resilience state."""

    def __init__(self,
                 config: StorefrontConfig,
                 circuit_breaker: Optional[CircuitBreaker] = None,
                 metrics: Optional[StorefrontMetrics] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.config = config
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=config.circuit_failure_threshold,
            reset_timeout=config.circuit_reset_timeout_ms / 1000,
            name="graphql",
        )
        self.metrics = metrics
        self.retry_config = RetryConfig(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay_ms / 1000,
            max_delay=config.retry_max_delay_ms / 1000,
        )
        self.logger = get_logger("storefront.graphql.factory")
        self._transport = transport
        self._sleep = sleep

    def create_for_request(self, context: Optional[RequestContext]) -> GraphQLClient:
        """Create a client for one inbound request."""
        links = [
            LoggingLink(self.metrics),
            ErrorLink(),
            CircuitBreakerLink(self.circuit_breaker, self.metrics),
            TimeoutLink(self.config.request_timeout_ms),
            RetryLink(self.retry_config, self._sleep),
            AuthLink(self.config),
        ]
        transport = HttpTransportLink(
            self.config.graphql_endpoint,
            transport=self._transport,
            timeout_s=self.config.request_timeout_ms / 1000,
        )
        return GraphQLClient(links, transport, context)

    def create_default(self) -> GraphQLClient:
        """Client without request context, for background work."""
        return self.create_for_request(None)

    async def execute_query(self,
                            client: GraphQLClient,
                            operation: Union[GraphQLOperation, str],
                            variables: Optional[Mapping[str, Any]] = None,
                            context: Optional[RequestContext] = None,
                            *,
                            result_model: Optional[Type[ModelT]] = None,
                            timeout_ms: Optional[int] = None) -> Any:
        """Execute a query and return its data (or validated model)."""
        return await self._execute(client, operation, variables, context, result_model, timeout_ms)

    async def execute_mutation(self,
                               client: GraphQLClient,
                               mutation: Union[GraphQLOperation, str],
                               variables: Optional[Mapping[str, Any]] = None,
                               context: Optional[RequestContext] = None,
                               *,
                               result_model: Optional[Type[ModelT]] = None,
                               timeout_ms: Optional[int] = None) -> Any:
        """Execute a mutation and return its data (or validated model)."""
        return await self._execute(client, mutation, variables, context, result_model, timeout_ms)

    async def _execute(self, client, operation, variables, context, result_model, timeout_ms) -> Any:
        if isinstance(operation, str):
            operation = GraphQLOperation.from_document(operation)

        result = await client.execute(operation, variables, context=context, timeout_ms=timeout_ms)

        request_context = context or client.context
        if request_context is not None and result.response_cookies:
            request_context.collect_response_cookies(result.response_cookies)

        if result_model is None:
            return result.data

        try:
            return result_model.model_validate(result.data)
        except ModelValidationError as exc:
            trace_id = request_context.trace_id if request_context else None
            self.logger.error(
                "GraphQL response failed validation",
                operation=operation.name,
                trace_id=trace_id,
                error_count=exc.error_count(),
            )
            raise UpstreamError(
                "GraphQL response did not match the expected shape",
                502,
                GRAPHQL_SERVICE,
                {"operation": operation.name, "error_count": exc.error_count()},
                trace_id,
            ) from None

    def get_circuit_breaker_status(self) -> Dict[str, Any]:
        """Read-only breaker state for health endpoints."""
        return self.circuit_breaker.get_state()
