from .app_cache import AppCache, CacheEntry, CacheStats
from .http_cache import HttpCacheControl
from .keys import CacheKeyBuilder

__all__ = ["AppCache", "CacheEntry", "CacheStats", "CacheKeyBuilder", "HttpCacheControl"]
