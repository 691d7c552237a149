"""
Cache key derivation for storefront resources.

Keys have the form ``<type>:<identifier>:<hash>``. The hash covers a canonical
JSON rendering of the parameters (keys sorted at every depth), so parameter
sets that are equal by value always produce the same key regardless of
insertion order.
"""

import hashlib
import json
from typing import Any, Mapping, Optional
from urllib.parse import quote

HASH_LENGTH = 12
EMPTY_TOKEN = "empty"


def canonical_json(params: Any) -> str:
    """Serialize params deterministically."""
    return json.dumps(params, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def hash_string(value: str) -> str:
    """Short MD5 prefix; a cache key discriminator, not a security primitive."""
    return hashlib.md5(value.encode("utf-8"), usedforsecurity=False).hexdigest()[:HASH_LENGTH]


def hash_params(params: Optional[Mapping[str, Any]]) -> str:
    if not params:
        return EMPTY_TOKEN
    return hash_string(canonical_json(params))


def _segment(identifier: str) -> str:
    # ':' inside a slug must not be able to imitate another key's structure
    return quote(str(identifier), safe="-_.~")


class CacheKeyBuilder:
    """Deterministic key constructors, one per resource family."""

    @staticmethod
    def graphql(operation_name: str, variables: Optional[Mapping[str, Any]] = None) -> str:
        return f"graphql:{_segment(operation_name)}:{hash_params(variables)}"

    @staticmethod
    def page(route: str, params: Optional[Mapping[str, Any]] = None,
             query: Optional[Mapping[str, Any]] = None) -> str:
        return f"page:{_segment(route)}:{hash_params(params)}:{hash_params(query)}"

    @staticmethod
    def product(slug: str, variant: Optional[str] = None) -> str:
        if variant:
            return f"product:{_segment(slug)}:{_segment(variant)}"
        return f"product:{_segment(slug)}"

    @staticmethod
    def category(slug: str, filters: Optional[Mapping[str, Any]] = None) -> str:
        return f"category:{_segment(slug)}:{hash_params(filters)}"

    @staticmethod
    def collection(slug: str, filters: Optional[Mapping[str, Any]] = None) -> str:
        return f"collection:{_segment(slug)}:{hash_params(filters)}"

    @staticmethod
    def search(query: str, filters: Optional[Mapping[str, Any]] = None) -> str:
        return f"search:{hash_string(query)}:{hash_params(filters)}"
