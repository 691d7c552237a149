"""
Unit tests for the request-scoped GraphQL pipeline.
"""

import asyncio

import httpx
import pytest
from pydantic import BaseModel

from service_storefront.app.context import RequestContext
from service_storefront.app.graphql import GraphQLClientFactory
from service_storefront.app.graphql.operations import GET_PRODUCT, GET_PRODUCTS
from storefront_shared.circuit_breaker import CircuitBreaker, CircuitBreakerState
from storefront_shared.errors import (
    AuthenticationError,
    CircuitOpenError,
    RequestTimeoutError,
    UpstreamError,
    ValidationError,
)
from storefront_shared.metrics import StorefrontMetrics


class Product(BaseModel):
    name: str


class ProductEnvelope(BaseModel):
    product: Product


@pytest.fixture
def context():
    return RequestContext(
        trace_id="trace-123",
        locale="fr",
        user_agent="StorefrontTest/1.0",
        cookies={"anonymous_id": "anon-1", "tracking": "t"},
    )


@pytest.fixture
def factory(config, graphql_server, fake_sleep):
    return GraphQLClientFactory(config, transport=graphql_server.transport, sleep=fake_sleep)


class TestSuccessfulOperations:
    """Test cases for the happy path."""

    @pytest.mark.asyncio
    async def test_returns_data(self, factory, graphql_server, context):
        graphql_server.reply(data={"product": {"name": "Widget"}})
        client = factory.create_for_request(context)

        data = await factory.execute_query(client, GET_PRODUCT, {"slug": "slug-1"}, context)

        assert data == {"product": {"name": "Widget"}}
        payload = graphql_server.payload()
        assert payload["operationName"] == "GetProduct"
        assert payload["variables"] == {"slug": "slug-1"}
        assert payload["query"] == GET_PRODUCT.document

    @pytest.mark.asyncio
    async def test_forwards_headers_and_allow_listed_cookies(self, factory, graphql_server, context):
        graphql_server.reply(data={"product": None})
        client = factory.create_for_request(context)

        await factory.execute_query(client, GET_PRODUCT, {"slug": "slug-1"})

        request = graphql_server.requests[0]
        assert request.method == "POST"
        assert str(request.url) == factory.config.graphql_endpoint
        assert request.headers["authorization"] == "Bearer test-token"
        assert request.headers["accept-language"] == "fr"
        assert request.headers["user-agent"] == "StorefrontTest/1.0"
        assert request.headers["x-trace-id"] == "trace-123"
        assert request.headers["cookie"] == "anonymous_id=anon-1"

    @pytest.mark.asyncio
    async def test_default_client_sends_no_request_headers(self, factory, graphql_server):
        graphql_server.reply(data={"products": {"items": []}})

        await factory.execute_query(factory.create_default(), GET_PRODUCTS)

        request = graphql_server.requests[0]
        assert "cookie" not in request.headers
        assert "x-trace-id" not in request.headers
        assert request.headers["authorization"] == "Bearer test-token"

    @pytest.mark.asyncio
    async def test_response_cookies_are_handed_to_context(self, factory, graphql_server, context):
        graphql_server.reply(
            data={"product": {"name": "Widget"}},
            headers=[("set-cookie", "anonymous_id=anon-2; Path=/"), ("set-cookie", "other=1; Path=/")],
        )
        client = factory.create_for_request(context)

        await factory.execute_query(client, GET_PRODUCT, {"slug": "slug-1"})

        assert context.response_cookies == ["anonymous_id=anon-2; Path=/", "other=1; Path=/"]

    @pytest.mark.asyncio
    async def test_string_documents_are_named(self, factory, graphql_server):
        graphql_server.reply(data={"ping": "pong"})

        data = await factory.execute_query(factory.create_default(), "query Ping { ping }")

        assert data == {"ping": "pong"}
        assert graphql_server.payload()["operationName"] == "Ping"

    @pytest.mark.asyncio
    async def test_mutation(self, factory, graphql_server):
        graphql_server.reply(data={"addItems": {"success": True}})

        data = await factory.execute_mutation(
            factory.create_default(),
            "mutation AddItems($qty: Int) { addItems(qty: $qty) { success } }",
            {"qty": 1},
        )

        assert data == {"addItems": {"success": True}}
        assert graphql_server.payload()["operationName"] == "AddItems"

    @pytest.mark.asyncio
    async def test_result_model_validation(self, factory, graphql_server):
        graphql_server.reply(data={"product": {"name": "Widget"}})

        result = await factory.execute_query(
            factory.create_default(), GET_PRODUCT, {"slug": "slug-1"}, result_model=ProductEnvelope,
        )

        assert isinstance(result, ProductEnvelope)
        assert result.product.name == "Widget"

    @pytest.mark.asyncio
    async def test_result_model_mismatch_is_upstream_error(self, factory, graphql_server, context):
        graphql_server.reply(data={"product": {"title": "Widget"}})

        with pytest.raises(UpstreamError) as exc_info:
            await factory.execute_query(
                factory.create_for_request(context), GET_PRODUCT, {"slug": "slug-1"},
                result_model=ProductEnvelope,
            )
        assert exc_info.value.trace_id == "trace-123"

    @pytest.mark.asyncio
    async def test_records_success_metric(self, config, graphql_server, fake_sleep):
        metrics = StorefrontMetrics("test")
        factory = GraphQLClientFactory(config, metrics=metrics, transport=graphql_server.transport, sleep=fake_sleep)
        graphql_server.reply(data={"product": {"name": "Widget"}})

        await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})

        assert metrics.get_sample(
            "graphql_operations_total", {"operation": "GetProduct", "outcome": "success"}
        ) == 1.0


class TestFailures:
    """Test cases for error classification and retries."""

    @pytest.mark.asyncio
    async def test_errors_take_precedence_over_partial_data(self, factory, graphql_server):
        graphql_server.reply(data={"product": {"name": "Widget"}}, errors=[{"message": "price unavailable"}])

        with pytest.raises(UpstreamError):
            await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})
        assert graphql_server.calls == 1

    @pytest.mark.asyncio
    async def test_missing_data_is_failure(self, factory, graphql_server):
        graphql_server.reply()

        with pytest.raises(UpstreamError, match="no data"):
            await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})

    @pytest.mark.asyncio
    async def test_server_errors_are_retried_with_growing_delays(self, factory, graphql_server, sleeps):
        graphql_server.reply(status_code=503, times=3)

        with pytest.raises(UpstreamError) as exc_info:
            await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})

        assert exc_info.value.status_code == 503
        assert graphql_server.calls == 3
        assert len(sleeps) == 2
        assert sleeps[0] < sleeps[1]

    @pytest.mark.asyncio
    async def test_retry_recovers(self, factory, graphql_server, sleeps):
        graphql_server.reply(status_code=502)
        graphql_server.reply(data={"product": {"name": "Widget"}})

        data = await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})

        assert data == {"product": {"name": "Widget"}}
        assert graphql_server.calls == 2
        assert len(sleeps) == 1

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self, factory, graphql_server):
        graphql_server.fail_with(httpx.ConnectError("refused"), times=3)

        with pytest.raises(UpstreamError, match="Network error"):
            await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})
        assert graphql_server.calls == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, factory, graphql_server, sleeps):
        graphql_server.reply(status_code=400)

        with pytest.raises(UpstreamError):
            await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})
        assert graphql_server.calls == 1
        assert sleeps == []
        assert factory.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_unauthorized(self, factory, graphql_server):
        graphql_server.reply(status_code=401)

        with pytest.raises(AuthenticationError):
            await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})

    @pytest.mark.asyncio
    async def test_graphql_error_codes(self, factory, graphql_server):
        graphql_server.reply(errors=[{"message": "bad slug", "extensions": {"code": "BAD_USER_INPUT"}}])

        with pytest.raises(ValidationError):
            await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": ""})
        assert factory.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_timeout_bounds_whole_call(self, config_factory, graphql_server):
        factory = GraphQLClientFactory(
            config_factory(request_timeout_ms=100, max_retries=0),
            transport=graphql_server.transport,
        )

        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={"data": {"product": None}})

        graphql_server.respond_with(slow)

        with pytest.raises(RequestTimeoutError) as exc_info:
            await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})
        assert exc_info.value.status_code == 408
        assert "100ms" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_per_call_timeout_override(self, factory, graphql_server):
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={"data": {"product": None}})

        graphql_server.respond_with(slow)

        with pytest.raises(RequestTimeoutError):
            await factory.execute_query(
                factory.create_default(), GET_PRODUCT, {"slug": "slug-1"}, timeout_ms=50,
            )


class TestCircuitBreakerIntegration:
    """Test cases for the shared breaker inside the pipeline."""

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker(failure_threshold=3, reset_timeout=30.0, name="graphql", clock=clock)

    @pytest.fixture
    def factory(self, config_factory, graphql_server, breaker, fake_sleep):
        return GraphQLClientFactory(
            config_factory(max_retries=0),
            circuit_breaker=breaker,
            transport=graphql_server.transport,
            sleep=fake_sleep,
        )

    @pytest.mark.asyncio
    async def test_opens_and_fails_fast(self, factory, graphql_server):
        graphql_server.reply(status_code=500, times=3)

        for _ in range(3):
            with pytest.raises(UpstreamError):
                await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})

        with pytest.raises(CircuitOpenError) as exc_info:
            await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})

        assert exc_info.value.status_code == 503
        assert graphql_server.calls == 3
        assert factory.get_circuit_breaker_status()["state"] == "open"

    @pytest.mark.asyncio
    async def test_half_open_trial_success_closes(self, factory, graphql_server, breaker, clock):
        graphql_server.reply(status_code=500, times=3)
        for _ in range(3):
            with pytest.raises(UpstreamError):
                await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})

        clock.advance(31)
        graphql_server.reply(data={"product": {"name": "Widget"}})

        data = await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})

        assert data == {"product": {"name": "Widget"}}
        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_trial_failure_reopens(self, factory, graphql_server, breaker, clock):
        graphql_server.reply(status_code=500, times=4)
        for _ in range(3):
            with pytest.raises(UpstreamError):
                await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})

        clock.advance(31)
        with pytest.raises(UpstreamError):
            await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})

        assert breaker.state == CircuitBreakerState.OPEN
        with pytest.raises(CircuitOpenError):
            await factory.execute_query(factory.create_default(), GET_PRODUCT, {"slug": "slug-1"})
        assert graphql_server.calls == 4

    @pytest.mark.asyncio
    async def test_breaker_is_shared_across_request_clients(self, factory, graphql_server):
        graphql_server.reply(status_code=500, times=3)

        for trace in ("a", "b", "c"):
            client = factory.create_for_request(RequestContext(trace_id=trace))
            with pytest.raises(UpstreamError):
                await factory.execute_query(client, GET_PRODUCT, {"slug": "slug-1"})

        with pytest.raises(CircuitOpenError):
            await factory.execute_query(
                factory.create_for_request(RequestContext(trace_id="d")), GET_PRODUCT, {"slug": "slug-1"},
            )
