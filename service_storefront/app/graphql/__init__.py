"""
Outbound GraphQL access for the storefront.
"""

from .client import GraphQLClient, GraphQLClientFactory
from .error_mapper import GraphQLErrorMapper, GraphQLResponseError, NetworkError
from .links import GraphQLRequest, GraphQLResult
from .operations import GraphQLOperation

__all__ = [
    "GraphQLClient",
    "GraphQLClientFactory",
    "GraphQLErrorMapper",
    "GraphQLOperation",
    "GraphQLRequest",
    "GraphQLResponseError",
    "GraphQLResult",
    "NetworkError",
]
