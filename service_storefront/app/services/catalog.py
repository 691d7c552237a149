"""
Catalog reads (products, categories, collections, brands) backed by the app cache.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional

from storefront_shared.config import StorefrontConfig

from ..caching import AppCache, CacheKeyBuilder
from ..context import RequestContext
from ..graphql import GraphQLClientFactory, GraphQLOperation
from ..graphql import operations as ops


class CatalogService:
    """Cache-aside access to catalog data.

    Every read derives a key with CacheKeyBuilder, and only runs the GraphQL
    operation on a miss. Failures propagate and are never cached.
    """

    def __init__(self, client_factory: GraphQLClientFactory, cache: AppCache, config: StorefrontConfig):
        self.client_factory = client_factory
        self.cache = cache
        self.ttl = config.cache_ttl_seconds

    async def _fetch(self,
                     key: str,
                     operation: GraphQLOperation,
                     variables: Mapping[str, Any],
                     field: str,
                     ttl_seconds: float,
                     context: Optional[RequestContext],
                     transform: Optional[Callable[[Any], Any]] = None) -> Any:
        trace_id = context.trace_id if context else None

        async def load():
            client = self.client_factory.create_for_request(context)
            data = await self.client_factory.execute_query(client, operation, variables, context)
            value = data.get(field) if isinstance(data, dict) else None
            return transform(value) if transform else value

        return await self.cache.get_or_set(key, load, ttl_seconds, trace_id)

    # Products

    async def get_product(self, slug: str, context: Optional[RequestContext] = None) -> Any:
        """Product detail by slug."""
        return await self._fetch(
            CacheKeyBuilder.product(slug),
            ops.GET_PRODUCT,
            {"slug": slug},
            "product",
            self.ttl,
            context,
        )

    async def get_products(self, params: Optional[Dict[str, Any]] = None,
                           context: Optional[RequestContext] = None) -> Any:
        """Product listing page."""
        params = dict(params or {})
        return await self._fetch(
            CacheKeyBuilder.graphql(ops.GET_PRODUCTS.name, params),
            ops.GET_PRODUCTS,
            params,
            "products",
            self.ttl,
            context,
        )

    async def search_products(self, query: str, params: Optional[Dict[str, Any]] = None,
                              context: Optional[RequestContext] = None) -> Any:
        """Full-text product search, cached for half the default TTL."""
        params = dict(params or {})
        return await self._fetch(
            CacheKeyBuilder.search(query, params),
            ops.GET_PRODUCTS,
            {**params, "search": query},
            "products",
            self.ttl / 2,
            context,
        )

    async def get_search_suggestions(self, query: str, context: Optional[RequestContext] = None) -> Any:
        """Autocomplete suggestions for a partial query."""
        return await self._fetch(
            CacheKeyBuilder.graphql(ops.SEARCH_PRODUCTS.name, {"query": query}),
            ops.SEARCH_PRODUCTS,
            {"query": query},
            "searchProduct",
            self.ttl / 2,
            context,
        )

    async def get_product_price(self, slug: str, size: str, pincode: str = "",
                                context: Optional[RequestContext] = None) -> Any:
        """Size-level price and availability; prices move often so the TTL is a quarter."""
        variables = {"slug": slug, "size": size, "pincode": pincode}
        return await self._fetch(
            CacheKeyBuilder.graphql(ops.GET_PRODUCT_PRICE.name, variables),
            ops.GET_PRODUCT_PRICE,
            variables,
            "productPrice",
            self.ttl / 4,
            context,
        )

    # Categories

    async def get_categories(self, department: Optional[str] = None,
                             context: Optional[RequestContext] = None) -> List[Dict[str, Any]]:
        """All departments, reshaped into category cards."""
        return await self._fetch(
            CacheKeyBuilder.graphql(ops.GET_CATEGORIES.name, {"department": department}),
            ops.GET_CATEGORIES,
            {"department": department} if department else {},
            "categories",
            self.ttl * 4,
            context,
            transform=_department_cards,
        )

    async def get_category(self, slug: str, context: Optional[RequestContext] = None) -> Any:
        return await self._fetch(
            CacheKeyBuilder.category(slug),
            ops.GET_CATEGORY,
            {"slug": slug},
            "category",
            self.ttl * 2,
            context,
        )

    async def get_category_products(self, slug: str, params: Optional[Dict[str, Any]] = None,
                                    context: Optional[RequestContext] = None) -> Any:
        params = dict(params or {})
        return await self._fetch(
            CacheKeyBuilder.category(slug, params),
            ops.GET_CATEGORY_PRODUCTS,
            {**params, "slug": slug},
            "categoryProducts",
            self.ttl,
            context,
        )

    # Collections

    async def get_collection(self, slug: str, context: Optional[RequestContext] = None) -> Any:
        return await self._fetch(
            CacheKeyBuilder.collection(slug),
            ops.GET_COLLECTION,
            {"slug": slug},
            "collection",
            self.ttl * 2,
            context,
        )

    async def get_collection_products(self, slug: str, params: Optional[Dict[str, Any]] = None,
                                      context: Optional[RequestContext] = None) -> Any:
        params = dict(params or {})
        return await self._fetch(
            CacheKeyBuilder.collection(slug, params),
            ops.GET_COLLECTION_PRODUCTS,
            {**params, "slug": slug},
            "collectionProducts",
            self.ttl,
            context,
        )

    # Brands

    async def get_brands(self, params: Optional[Dict[str, Any]] = None,
                         context: Optional[RequestContext] = None) -> Any:
        params = dict(params or {})
        return await self._fetch(
            CacheKeyBuilder.graphql(ops.GET_BRANDS.name, params),
            ops.GET_BRANDS,
            params,
            "brands",
            self.ttl * 2,
            context,
        )


def _department_cards(categories: Any) -> List[Dict[str, Any]]:
    """Turn `categories.data[].department` into display cards."""
    items = (categories or {}).get("data") or []
    cards = []
    for index, item in enumerate(items, start=1):
        department = (item or {}).get("department")
        label = department.replace("-", " ") if department else None
        cards.append({
            "uid": index,
            "name": " ".join(w.capitalize() for w in label.split()) if label else "Category",
            "slug": department or f"category-{index}",
            "description": f"Explore products in {label or 'this category'}",
            "logo": None,
            "department": department,
        })
    return cards
