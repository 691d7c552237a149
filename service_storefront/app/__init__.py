"""
Storefront service package.

Request flow:
- main: FastAPI surface, request context middleware and error rendering
- services.catalog: cache-backed catalog reads
- graphql: request-scoped clients over a shared circuit breaker
- caching: in-process TTL/LRU cache, key derivation and HTTP cache headers
"""
