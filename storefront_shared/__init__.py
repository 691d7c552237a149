"""
Shared utilities for the Storefront Access Layer.

This package aggregates the cross-cutting building blocks used by the
storefront service:

- config: Process configuration via pydantic-settings
- logging: Structured logging with trace correlation and redaction
- metrics: Prometheus metrics for GraphQL calls and the cache
- errors: Canonical error taxonomy and responses
- retry: Exponential backoff with jitter
- circuit_breaker: Resilient external call protection

Do not import from service_* packages into storefront_shared/.
"""
