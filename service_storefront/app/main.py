"""
Storefront service: FastAPI surface over the cached catalog.
"""

import time
from dataclasses import asdict
from http.cookies import CookieError, SimpleCookie
from typing import Any, Dict, Iterable, Optional

import httpx
from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront_shared.config import StorefrontConfig, get_config
from storefront_shared.errors import InternalError, NotFoundError, StorefrontError
from storefront_shared.logging import bind_request_context, clear_context, configure_logging, get_logger
from storefront_shared.metrics import StorefrontMetrics

from .caching import AppCache, HttpCacheControl
from .context import RequestContext, build_request_context
from .graphql import GraphQLClientFactory
from .services import CatalogService


def get_request_context(request: Request) -> RequestContext:
    """Context built by the request middleware."""
    return request.state.context


class StorefrontService:
    """Storefront service implementation.

    Owns the process-wide singletons: the cache, metrics, the GraphQL client
    factory (and through it the shared circuit breaker) and the catalog service.
    """

    def __init__(self, config: Optional[StorefrontConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or get_config()
        self.service_name = self.config.service_name

        configure_logging(self.service_name, self.config.log_level, self.config.json_logs)
        self.logger = get_logger(self.service_name)

        self.metrics = StorefrontMetrics(self.service_name)
        self.cache = AppCache(
            self.config.cache_max_size,
            self.config.cache_ttl_seconds,
            metrics=self.metrics,
        )
        self.client_factory = GraphQLClientFactory(self.config, metrics=self.metrics, transport=transport)
        self.circuit_breaker = self.client_factory.circuit_breaker
        self.catalog = CatalogService(self.client_factory, self.cache, self.config)
        self._start_time = time.time()

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_exception_handlers()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title="Storefront Service",
            description="Storefront access layer over the commerce GraphQL API",
            version="1.0.0",
            docs_url=None if self.config.is_production else "/docs",
            redoc_url=None,
        )
        app.state.config = self.config
        app.state.cache = self.cache
        app.state.metrics = self.metrics
        app.state.circuit_breaker = self.circuit_breaker
        app.state.client_factory = self.client_factory
        app.state.catalog = self.catalog
        return app

    def _setup_middleware(self):
        """Set up middleware."""

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def request_context_middleware(request: Request, call_next):
            context = build_request_context(
                request.headers,
                request.query_params,
                request.client.host if request.client else None,
                self.config.forwarded_cookies,
            )
            request.state.context = context
            bind_request_context(context.trace_id, context.locale)
            start_time = time.time()

            try:
                response = await call_next(request)

                response.headers["X-Trace-ID"] = context.trace_id
                self._apply_response_cookies(response, context.response_cookies)

                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round((time.time() - start_time) * 1000, 2),
                )
                return response
            finally:
                clear_context()

    def _apply_response_cookies(self, response: Response, set_cookie_values: Iterable[str]) -> None:
        """Copy allow-listed cookies set by the GraphQL API onto the response."""
        allowed = set(self.config.forwarded_cookies)
        for raw in set_cookie_values:
            cookie = SimpleCookie()
            try:
                cookie.load(raw)
            except CookieError:
                self.logger.warning("Ignoring malformed Set-Cookie from GraphQL API")
                continue

            for name, morsel in cookie.items():
                if name not in allowed:
                    self.logger.debug("Dropping cookie outside allow-list", cookie=name)
                    continue
                if self.config.secure_cookies:
                    morsel["secure"] = True
                response.headers.append("set-cookie", morsel.OutputString())

    def _error_response(self, request: Request, error: StorefrontError) -> JSONResponse:
        body = error.to_response(include_context=not self.config.is_production)
        if body.trace_id is None:
            context = getattr(request.state, "context", None)
            body.trace_id = context.trace_id if context else None
        return JSONResponse(status_code=error.status_code, content=body.model_dump())

    def _setup_exception_handlers(self):
        @self.app.exception_handler(StorefrontError)
        async def storefront_error_handler(request: Request, exc: StorefrontError):
            log = self.logger.warning if exc.is_operational else self.logger.error
            log(
                "Request failed",
                code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
                path=request.url.path,
            )
            return self._error_response(request, exc)

        @self.app.exception_handler(Exception)
        async def unhandled_error_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            error = InternalError(
                "Internal server error",
                {"error_type": type(exc).__name__},
            )
            return self._error_response(request, error)

    def _setup_routes(self):
        """Set up storefront routes."""
        catalog = self.catalog
        ttl = self.config.cache_ttl_seconds

        @self.app.get("/health")
        async def health_check(response: Response):
            HttpCacheControl.set_no_cache(response)
            breaker = self.client_factory.get_circuit_breaker_status()
            return {
                "service": self.service_name,
                "status": "degraded" if breaker["state"] == "open" else "ok",
                "uptime_seconds": round(time.time() - self._start_time, 3),
                "version": "1.0.0",
            }

        @self.app.get("/health/circuit-breaker")
        async def circuit_breaker_status(response: Response):
            HttpCacheControl.set_no_cache(response)
            return self.client_factory.get_circuit_breaker_status()

        @self.app.get("/cache/stats")
        async def cache_stats(response: Response):
            HttpCacheControl.set_no_cache(response)
            stats: Dict[str, Any] = asdict(self.cache.get_stats())
            stats["hit_ratio"] = round(self.cache.get_hit_ratio(), 4)
            return stats

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=self.metrics.render(), media_type=self.metrics.content_type)

        @self.app.get("/api/products/{slug}")
        async def get_product(slug: str, response: Response,
                              context: RequestContext = Depends(get_request_context)):
            product = await catalog.get_product(slug, context)
            if product is None:
                raise NotFoundError("Product", slug, trace_id=context.trace_id)
            HttpCacheControl.set_headers(response, ttl)
            return product

        @self.app.get("/api/search")
        async def search_products(response: Response,
                                  q: str = Query(..., min_length=1),
                                  page_no: int = Query(1, alias="pageNo", ge=1),
                                  sort_on: Optional[str] = Query(None, alias="sortOn"),
                                  context: RequestContext = Depends(get_request_context)):
            params: Dict[str, Any] = {"pageNo": page_no}
            if sort_on:
                params["sortOn"] = sort_on
            result = await catalog.search_products(q, params, context)
            HttpCacheControl.set_headers(response, ttl // 2)
            return result

        @self.app.get("/api/categories")
        async def list_categories(response: Response,
                                  department: Optional[str] = None,
                                  context: RequestContext = Depends(get_request_context)):
            categories = await catalog.get_categories(department, context)
            HttpCacheControl.set_headers(response, ttl * 4)
            return {"items": categories}

        @self.app.get("/api/categories/{slug}/products")
        async def category_products(slug: str, response: Response,
                                    page_no: int = Query(1, alias="pageNo", ge=1),
                                    context: RequestContext = Depends(get_request_context)):
            result = await catalog.get_category_products(slug, {"pageNo": page_no}, context)
            HttpCacheControl.set_headers(response, ttl)
            return result

        @self.app.get("/api/collections/{slug}/products")
        async def collection_products(slug: str, response: Response,
                                      page_no: int = Query(1, alias="pageNo", ge=1),
                                      context: RequestContext = Depends(get_request_context)):
            result = await catalog.get_collection_products(slug, {"pageNo": page_no}, context)
            HttpCacheControl.set_headers(response, ttl)
            return result

        @self.app.get("/api/brands")
        async def list_brands(response: Response,
                              page_no: int = Query(1, alias="pageNo", ge=1),
                              context: RequestContext = Depends(get_request_context)):
            result = await catalog.get_brands({"pageNo": page_no}, context)
            HttpCacheControl.set_headers(response, ttl * 2)
            return result

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
        )


def create_app(config: Optional[StorefrontConfig] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """Create the storefront FastAPI application."""
    return StorefrontService(config, transport).app


if __name__ == "__main__":
    StorefrontService().run()
