"""
GraphQL operation documents used by the storefront catalog.
"""

import re
from dataclasses import dataclass

_OPERATION_RE = re.compile(r"^\s*(query|mutation)\s+([A-Za-z_][A-Za-z0-9_]*)", re.MULTILINE)


@dataclass(frozen=True)
class GraphQLOperation:
    """A named GraphQL document."""
    name: str
    document: str
    kind: str = "query"

    @classmethod
    def from_document(cls, document: str) -> "GraphQLOperation":
        """Build an operation, taking name and kind from the first definition."""
        match = _OPERATION_RE.search(document)
        if match is None:
            return cls(name="UnknownOperation", document=document)
        return cls(name=match.group(2), document=document, kind=match.group(1))


MEDIA_FRAGMENT = """
fragment MediaFragment on Media {
  url
}
"""

PRICE_FRAGMENT = """
fragment PriceFragment on ProductListingPriceDetails {
  effective { min max currency_code }
  marked { min max currency_code }
}
"""

PRODUCT_BASIC_FRAGMENT = """
fragment ProductBasicFragment on ProductListingDetail {
  uid
  name
  slug
  brand { name }
  media { ...MediaFragment }
  price { ...PriceFragment }
}
""" + MEDIA_FRAGMENT + PRICE_FRAGMENT

PAGINATION_FRAGMENT = """
fragment PaginationFragment on PageInfo {
  current
  has_next
  has_previous
  item_total
  size
  type
}
"""

GET_PRODUCTS = GraphQLOperation.from_document("""
query GetProducts($search: String, $sortOn: String, $pageNo: Int, $pageType: String) {
  products(search: $search, sortOn: $sortOn, pageNo: $pageNo, pageType: $pageType) {
    items { ...ProductBasicFragment }
    page { ...PaginationFragment }
  }
}
""" + PRODUCT_BASIC_FRAGMENT + PAGINATION_FRAGMENT)

GET_PRODUCT = GraphQLOperation.from_document("""
query GetProduct($slug: String!) {
  product(slug: $slug) {
    uid
    name
    slug
    short_description
    description
    brand { name uid logo { url alt } }
    media { ...MediaFragment }
    attributes
    has_variant
    item_code
    rating
    rating_count
    sellable
    tags
    discount
    sizes {
      discount
      sellable
      size_details { display value is_available quantity }
    }
    price {
      effective { currency_code currency_symbol max min }
      marked { currency_code currency_symbol max min }
    }
  }
}
""" + MEDIA_FRAGMENT)

SEARCH_PRODUCTS = GraphQLOperation.from_document("""
query SearchProducts($query: String!) {
  searchProduct(query: $query) {
    items { type action { type } }
  }
}
""")

GET_PRODUCT_PRICE = GraphQLOperation.from_document("""
query ProductPrice($slug: String!, $size: String!, $pincode: String!) {
  productPrice(slug: $slug, size: $size, pincode: $pincode) {
    article_id
    discount
    is_cod
    pincode
    quantity
    seller_count
    price { currency_code currency_symbol effective marked selling }
  }
}
""")

GET_CATEGORIES = GraphQLOperation.from_document("""
query GetCategories {
  categories {
    data { department }
  }
}
""")

GET_CATEGORY = GraphQLOperation.from_document("""
query GetCategory($slug: String!) {
  category(slug: $slug) { uid name slug }
}
""")

GET_CATEGORY_PRODUCTS = GraphQLOperation.from_document("""
query GetCategoryProducts($slug: String!, $pageNo: Int) {
  categoryProducts(slug: $slug, pageNo: $pageNo) {
    items { ...ProductBasicFragment }
    page { ...PaginationFragment }
  }
}
""" + PRODUCT_BASIC_FRAGMENT + PAGINATION_FRAGMENT)

GET_COLLECTION = GraphQLOperation.from_document("""
query GetCollection($slug: String!) {
  collection(slug: $slug) { uid name slug }
}
""")

GET_COLLECTION_PRODUCTS = GraphQLOperation.from_document("""
query GetCollectionProducts($slug: String!, $pageNo: Int) {
  collectionProducts(slug: $slug, pageNo: $pageNo) {
    items { ...ProductBasicFragment }
    page { ...PaginationFragment }
  }
}
""" + PRODUCT_BASIC_FRAGMENT + PAGINATION_FRAGMENT)

GET_BRANDS = GraphQLOperation.from_document("""
query GetBrands($pageNo: Int) {
  brands(pageNo: $pageNo) {
    items { uid name slug description }
    page { ...PaginationFragment }
  }
}
""" + PAGINATION_FRAGMENT)
